"""Tests for hosted checkout sessions and manual payment confirmation."""

from decimal import Decimal

import pytest
import stripe
from django.db import DatabaseError
from django.db.models.query import QuerySet

from monitoring.models import Alert
from orders.models import Order
from orders.state import OrderStatus, PaymentStatus

pytestmark = pytest.mark.django_db


class TestCheckoutSession:
    def test_creates_session_and_moves_order(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 5)])

        response = customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")

        assert response.status_code == 201
        assert response.data["session_id"] == "cs_test_1"
        assert response.data["url"].startswith("https://checkout.stripe.test/")
        assert response.data["totals"]["total"] == "159.45"

        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING_PAYMENT
        assert order.payment_status == PaymentStatus.UNPAID
        assert order.session_id == "cs_test_1"
        assert order.version == 1

    def test_session_charges_subtotal_and_tax(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 5)])

        customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")

        params = fake_stripe.sessions[0]
        amounts = [line["price_data"]["unit_amount"] for line in params["line_items"]]
        assert amounts == [14495, 1450]
        assert params["line_items"][1]["price_data"]["product_data"]["name"] == "IVA (10%)"
        assert params["metadata"]["order_id"] == str(order.pk)
        assert params["metadata"]["user_id"] == str(customer.pk)
        assert params["customer_email"] == customer.email
        assert params["client_reference_id"] == str(order.pk)
        assert str(order.pk) in params["success_url"]

    def test_paid_order_conflicts(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])
        first = customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")
        Order.objects.filter(pk=order.pk).update(payment_status=PaymentStatus.PAID)

        second = customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")

        assert first.status_code == 201
        assert second.status_code == 409
        assert len(fake_stripe.sessions) == 1

    def test_second_session_replaces_first(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])

        customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")
        response = customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")

        assert response.status_code == 201
        order.refresh_from_db()
        assert order.session_id == "cs_test_2"
        assert order.status == OrderStatus.PENDING_PAYMENT

    def test_price_change_conflicts(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 2)])
        pistachio.price = Decimal("30.00")
        pistachio.save()

        response = customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")

        assert response.status_code == 409
        assert fake_stripe.sessions == []
        order.refresh_from_db()
        assert order.total_amount == Decimal("63.78")

    def test_items_must_match_order(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 2)])

        response = customer_api.post(
            f"/api/orders/{order.pk}/checkout-session/",
            {"items": [{"product_id": pistachio.pk, "quantity": 3}]},
            format="json",
        )

        assert response.status_code == 400
        assert fake_stripe.sessions == []

    def test_other_account_gets_not_found(self, fake_stripe, other_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])

        response = other_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")

        assert response.status_code == 404

    def test_gateway_failure(self, monkeypatch, customer_api, customer, pistachio, place_order):
        def unavailable(**params):
            raise stripe.APIConnectionError("connection reset")

        monkeypatch.setattr(stripe.checkout.Session, "create", unavailable)
        order = place_order(customer, [(pistachio, 1)])

        response = customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")

        assert response.status_code == 502
        assert response.data["code"] == "external_service_error"
        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING
        assert order.session_id is None

    def test_lost_correlation_raises_alert(self, monkeypatch, fake_stripe, customer_api, customer, pistachio,
                                           place_order):
        order = place_order(customer, [(pistachio, 1)])

        def broken_update(self, **kwargs):
            raise DatabaseError("connection lost")

        monkeypatch.setattr(QuerySet, "update", broken_update)
        response = customer_api.post(f"/api/orders/{order.pk}/checkout-session/", {}, format="json")

        assert response.status_code == 503
        assert response.data["code"] == "correlation_lost"
        alert = Alert.objects.get()
        assert alert.severity == Alert.Severity.CRITICAL
        assert alert.alert_type == Alert.AlertType.RECONCILIATION
        assert alert.metadata["session_id"] == "cs_test_1"
        assert alert.metadata["order_id"] == str(order.pk)


class TestConfirmPayment:
    def test_succeeded_intent_settles_order(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 5)])
        fake_stripe.add_intent("pi_ok", "succeeded", 15945, order_id=str(order.pk))

        response = customer_api.post(
            f"/api/orders/{order.pk}/confirm-payment/", {"payment_intent_id": "pi_ok"}, format="json"
        )

        assert response.status_code == 200
        assert response.data == {"paid": True, "status": "paid", "order_id": str(order.pk)}
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.PAID
        assert order.status == OrderStatus.PROCESSING
        assert order.payment_intent_id == "pi_ok"
        assert Alert.objects.count() == 0

    def test_unfinished_intent_changes_nothing(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])
        fake_stripe.add_intent("pi_wait", "processing", 3189, order_id=str(order.pk))

        response = customer_api.post(
            f"/api/orders/{order.pk}/confirm-payment/", {"payment_intent_id": "pi_wait"}, format="json"
        )

        assert response.data["paid"] is False
        assert response.data["status"] == "processing"
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.UNPAID

    def test_intent_of_another_order(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])
        other = place_order(customer, [(pistachio, 2)])
        fake_stripe.add_intent("pi_other", "succeeded", 6378, order_id=str(other.pk))

        response = customer_api.post(
            f"/api/orders/{order.pk}/confirm-payment/", {"payment_intent_id": "pi_other"}, format="json"
        )

        assert response.status_code == 400
        assert Order.objects.filter(payment_status=PaymentStatus.PAID).count() == 0

    def test_unknown_intent(self, fake_stripe, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])

        response = customer_api.post(
            f"/api/orders/{order.pk}/confirm-payment/", {"payment_intent_id": "pi_missing"}, format="json"
        )

        assert response.status_code == 400
