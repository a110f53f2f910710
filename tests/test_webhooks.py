"""Tests for the payment webhook endpoint."""

import json
import time
import uuid

import pytest

from accounts.models import AuditLog
from baklava_wholesale.context import AuthContext
from monitoring.models import Alert
from orders import checkout
from orders.models import Order
from orders.state import OrderStatus, PaymentStatus
from orders.webhooks import SESSION_COMPLETED, SESSION_EXPIRED

pytestmark = pytest.mark.django_db


@pytest.fixture
def checked_out_order(fake_stripe, customer, pistachio, place_order):
    """An order of 5 pistachio boxes (159.45) with an open checkout session."""
    order = place_order(customer, [(pistachio, 5)])
    checkout.start_checkout(AuthContext.for_user(customer), order.pk)
    order.refresh_from_db()
    return order


class TestSignature:
    def test_bad_signature_is_rejected(self, checked_out_order, post_webhook, make_event):
        event = make_event(SESSION_COMPLETED, checked_out_order.session_id, checked_out_order.pk,
                           amount_total=15945)

        response = post_webhook(event, signature="t=1,v1=deadbeef")

        assert response.status_code == 403
        checked_out_order.refresh_from_db()
        assert checked_out_order.payment_status == PaymentStatus.UNPAID

    def test_missing_signature_is_rejected(self, checked_out_order, post_webhook, make_event):
        event = make_event(SESSION_COMPLETED, checked_out_order.session_id, checked_out_order.pk)

        response = post_webhook(event, signature="")

        assert response.status_code == 403

    def test_stale_signature_is_rejected(self, checked_out_order, post_webhook, make_event, sign):
        event = make_event(SESSION_COMPLETED, checked_out_order.session_id, checked_out_order.pk)
        stale = sign(json.dumps(event), timestamp=int(time.time()) - 3600)

        response = post_webhook(event, signature=stale)

        assert response.status_code == 403

    def test_signed_with_other_secret(self, checked_out_order, post_webhook, make_event, sign):
        event = make_event(SESSION_COMPLETED, checked_out_order.session_id, checked_out_order.pk)

        response = post_webhook(event, signature=sign(json.dumps(event), secret="whsec_someone_else"))

        assert response.status_code == 403

    def test_body_that_is_not_utf8_is_rejected(self, checked_out_order, api_client):
        response = api_client.post(
            "/api/payments/webhook/",
            data=b"\xff\xfe\xfa",
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="t=1,v1=deadbeef",
        )

        assert response.status_code == 403
        assert "error" in response.data
        checked_out_order.refresh_from_db()
        assert checked_out_order.payment_status == PaymentStatus.UNPAID


class TestSessionCompleted:
    def test_redelivery_is_a_noop(self, checked_out_order, post_webhook, make_event):
        event = make_event(SESSION_COMPLETED, checked_out_order.session_id, checked_out_order.pk,
                           amount_total=15945, payment_intent="pi_123")

        first = post_webhook(event)
        paid = Order.objects.get(pk=checked_out_order.pk)
        second = post_webhook(event)
        again = Order.objects.get(pk=checked_out_order.pk)

        assert first.status_code == 200
        assert first.data == {"received": True, "result": "paid", "order_id": str(checked_out_order.pk)}
        assert second.status_code == 200
        assert second.data["result"] == "already_paid"

        assert Order.objects.count() == 1
        assert paid.payment_status == PaymentStatus.PAID
        assert paid.status == OrderStatus.PROCESSING
        assert paid.payment_method == "card"
        assert paid.payment_intent_id == "pi_123"
        assert paid.paid_at is not None
        assert (again.version, again.paid_at, again.updated_at) == (paid.version, paid.paid_at, paid.updated_at)
        assert AuditLog.objects.filter(action="PAYMENT_CONFIRMED").count() == 1
        assert Alert.objects.count() == 0

    def test_falls_back_to_order_id(self, customer, pistachio, place_order, post_webhook, make_event):
        order = place_order(customer, [(pistachio, 1)])

        response = post_webhook(make_event(SESSION_COMPLETED, "cs_never_attached", order.pk, amount_total=3189))

        assert response.data["result"] == "paid"
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.PAID
        assert order.session_id == "cs_never_attached"

    def test_missing_order_is_recreated(self, customer, post_webhook, make_event):
        order_id = uuid.uuid4()
        event = make_event(
            SESSION_COMPLETED,
            "cs_lost",
            order_id,
            user_id=customer.pk,
            amount_total=15945,
            metadata={"subtotal": "144.95", "tax": "14.50", "tax_rate": "0.10"},
        )

        response = post_webhook(event)

        assert response.status_code == 200
        assert response.data["result"] == "created"
        order = Order.objects.get(pk=order_id)
        assert order.user == customer
        assert order.session_id == "cs_lost"
        assert order.payment_status == PaymentStatus.PAID
        assert order.status == OrderStatus.PROCESSING
        assert str(order.total_amount) == "159.45"
        alert = Alert.objects.get()
        assert alert.alert_type == Alert.AlertType.RECONCILIATION
        assert alert.severity == Alert.Severity.WARNING

    def test_unattributable_payment(self, db, post_webhook, make_event):
        response = post_webhook(make_event(SESSION_COMPLETED, "cs_orphan", amount_total=5000))

        assert response.status_code == 400
        assert Order.objects.count() == 0
        alert = Alert.objects.get()
        assert alert.severity == Alert.Severity.CRITICAL
        assert alert.metadata["session_id"] == "cs_orphan"

    def test_amount_mismatch_raises_warning(self, checked_out_order, post_webhook, make_event):
        event = make_event(SESSION_COMPLETED, checked_out_order.session_id, checked_out_order.pk, amount_total=100)

        response = post_webhook(event)

        assert response.data["result"] == "paid"
        alert = Alert.objects.get()
        assert alert.alert_type == Alert.AlertType.PAYMENT
        assert alert.severity == Alert.Severity.WARNING
        assert alert.metadata["total_cents"] == 15945

    def test_payment_on_cancelled_order_needs_review(self, checked_out_order, post_webhook, make_event):
        Order.objects.filter(pk=checked_out_order.pk).update(status=OrderStatus.CANCELLED)
        event = make_event(SESSION_COMPLETED, checked_out_order.session_id, checked_out_order.pk,
                           amount_total=15945)

        response = post_webhook(event)

        assert response.status_code == 200
        assert response.data["result"] == "needs_review"
        assert Order.objects.get(pk=checked_out_order.pk).payment_status == PaymentStatus.UNPAID
        assert Alert.objects.get().severity == Alert.Severity.CRITICAL

    def test_delayed_payment_waits(self, checked_out_order, post_webhook, make_event):
        event = make_event(SESSION_COMPLETED, checked_out_order.session_id, checked_out_order.pk,
                           payment_status="unpaid")

        response = post_webhook(event)

        assert response.data["result"] == "awaiting_payment"
        assert Order.objects.get(pk=checked_out_order.pk).payment_status == PaymentStatus.UNPAID


class TestOtherEvents:
    def test_expired_session_reverts_order(self, checked_out_order, post_webhook, make_event):
        event = make_event(SESSION_EXPIRED, checked_out_order.session_id, checked_out_order.pk,
                           payment_status="unpaid")

        first = post_webhook(event)
        second = post_webhook(event)

        assert first.data["result"] == "reverted"
        assert second.data["result"] == "ignored"
        assert Order.objects.get(pk=checked_out_order.pk).status == OrderStatus.PENDING

    def test_unknown_event_is_acknowledged(self, checked_out_order, post_webhook):
        response = post_webhook({"id": "evt_1", "type": "customer.created", "data": {"object": {}}})

        assert response.status_code == 200
        assert response.data == {"received": True, "result": "ignored", "order_id": None}
