"""
Payment webhook handling and payment reconciliation.

``settle_payment`` is the single path that marks an order paid; both the
gateway webhook and the manual PaymentIntent confirmation go through it.
It is idempotent: the unpaid -> paid move is a conditional update, and a
second delivery of the same event finds the order already paid and does
nothing.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from accounts.audit import log_action
from baklava_wholesale.exceptions import ConflictError, ValidationError
from monitoring.alerts import raise_alert
from monitoring.models import Alert

from . import gateway
from .models import SHIPPING_FIELDS, Order
from .pricing import from_cents, to_cents
from .state import Actor, OrderStatus, PaymentMethod, PaymentStatus, apply_transition

logger = logging.getLogger(__name__)

SESSION_COMPLETED = "checkout.session.completed"
SESSION_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
SESSION_EXPIRED = "checkout.session.expired"

# Order states from which a card payment moves fulfilment to processing.
_AWAITING_PAYMENT = {OrderStatus.PENDING, OrderStatus.PENDING_PAYMENT}


class UnattributablePayment(ValidationError):
    """A paid charge whose owner cannot be determined."""


@dataclass(frozen=True)
class WebhookResult:
    outcome: str
    event_type: str = ""
    order_id: Optional[str] = None

    def as_dict(self):
        return {"received": True, "result": self.outcome, "order_id": self.order_id}


def _uuid_or_none(value):
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _find_order(session_id=None, order_id=None):
    queryset = Order.objects.select_for_update()
    if session_id:
        order = queryset.filter(session_id=session_id).first()
        if order is not None:
            return order
    order_uuid = _uuid_or_none(order_id)
    if order_uuid is not None:
        return queryset.filter(pk=order_uuid).first()
    return None


def _decimal(value, default):
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return default


def _shipping_from_session(session):
    details = session.get("shipping_details") or session.get("customer_details") or {}
    address = details.get("address") or {}
    return {
        "full_name": details.get("name") or "",
        "phone": details.get("phone") or "",
        "address": " ".join(filter(None, [address.get("line1"), address.get("line2")])),
        "city": address.get("city") or "",
        "postal_code": address.get("postal_code") or "",
        "country": address.get("country") or "",
    }


def _create_from_gateway(order_id, user_id, session_id, payment_intent_id, amount_cents, metadata, session):
    """
    Materialize an order that the gateway charged but we have no row for.

    The owner comes from the session metadata; without one the charge
    cannot be attributed and the event is refused loudly.
    """
    User = get_user_model()
    owner = None
    if user_id not in (None, ""):
        owner = User.objects.filter(pk=user_id).first() if str(user_id).isdigit() else None
    if owner is None:
        raise UnattributablePayment({"metadata": ["No owning user could be derived from the payment event."]})

    total = from_cents(amount_cents) if amount_cents is not None else Decimal("0.00")
    subtotal = _decimal(metadata.get("subtotal"), total)
    tax = _decimal(metadata.get("tax"), total - subtotal)
    order = Order.objects.create(
        id=_uuid_or_none(order_id) or uuid.uuid4(),
        user=owner,
        subtotal=subtotal,
        tax_amount=tax,
        tax_rate=_decimal(metadata.get("tax_rate"), Decimal("0.10")),
        total_amount=subtotal + tax,
        status=OrderStatus.PROCESSING,
        payment_status=PaymentStatus.PAID,
        payment_method=PaymentMethod.CARD,
        shipping_address={k: v for k, v in _shipping_from_session(session).items() if k in SHIPPING_FIELDS},
        session_id=session_id or None,
        payment_intent_id=payment_intent_id,
    )
    raise_alert(
        Alert.AlertType.RECONCILIATION,
        Alert.Severity.WARNING,
        "Order recreated from payment event",
        f"Order {order.pk} did not exist and was rebuilt from gateway data; it has no line items.",
        "webhook",
        order_id=str(order.pk),
        session_id=session_id,
    )
    return order


def settle_payment(
    *,
    source,
    session_id=None,
    order_id=None,
    user_id=None,
    payment_intent_id=None,
    amount_cents=None,
    metadata=None,
    session=None,
):
    """
    Mark the matching order paid and processing.

    The order is looked up by ``session_id`` first and by ``order_id``
    second; if neither exists it is created from the gateway data.
    Returns a ``WebhookResult`` whose outcome is ``paid``, ``created``,
    ``already_paid`` or ``needs_review``.
    """
    metadata = metadata or {}
    order_id = order_id or metadata.get("order_id")
    user_id = user_id or metadata.get("user_id")

    try:
        with transaction.atomic():
            order = _find_order(session_id, order_id)
            if order is None:
                order = _create_from_gateway(
                    order_id, user_id, session_id, payment_intent_id, amount_cents, metadata, session or {}
                )
                outcome = "created"
            elif order.payment_status == PaymentStatus.PAID:
                return WebhookResult("already_paid", order_id=str(order.pk))
            elif order.payment_status != PaymentStatus.UNPAID or order.status == OrderStatus.CANCELLED:
                raise_alert(
                    Alert.AlertType.PAYMENT,
                    Alert.Severity.CRITICAL,
                    "Payment received for a non-payable order",
                    f"Order {order.pk} is {order.status}/{order.payment_status} but a payment succeeded.",
                    source,
                    order_id=str(order.pk),
                    session_id=session_id,
                    payment_intent_id=payment_intent_id,
                )
                return WebhookResult("needs_review", order_id=str(order.pk))
            else:
                changes = {
                    "payment_status": PaymentStatus.PAID,
                    "payment_method": PaymentMethod.CARD,
                    "payment_intent_id": payment_intent_id or order.payment_intent_id,
                }
                if order.status in _AWAITING_PAYMENT:
                    changes["status"] = OrderStatus.PROCESSING
                if session_id and order.session_id != session_id:
                    changes["session_id"] = session_id
                apply_transition(order, changes, Actor.WEBHOOK if source == "webhook" else Actor.SYSTEM)
                outcome = "paid"

            log_action(
                None,
                "PAYMENT_CONFIRMED",
                "ORDER",
                order.pk,
                metadata={
                    "source": source,
                    "outcome": outcome,
                    "session_id": session_id,
                    "payment_intent_id": payment_intent_id,
                    "amount_cents": amount_cents,
                },
            )
    except UnattributablePayment:
        raise_alert(
            Alert.AlertType.RECONCILIATION,
            Alert.Severity.CRITICAL,
            "Paid checkout session without an owner",
            "A paid checkout session could not be attributed to any account.",
            source,
            session_id=session_id,
            order_id=order_id,
            user_id=user_id,
            amount_cents=amount_cents,
        )
        raise
    except (IntegrityError, ConflictError):
        # A concurrent delivery got there first; whatever it wrote wins.
        order = _find_existing(session_id, order_id)
        if order is not None and order.payment_status == PaymentStatus.PAID:
            return WebhookResult("already_paid", order_id=str(order.pk))
        raise

    if amount_cents is not None and amount_cents != to_cents(order.total_amount):
        raise_alert(
            Alert.AlertType.PAYMENT,
            Alert.Severity.WARNING,
            "Charged amount differs from order total",
            f"Order {order.pk} total is {order.total_amount} but {from_cents(amount_cents)} was charged.",
            source,
            order_id=str(order.pk),
            amount_cents=amount_cents,
            total_cents=to_cents(order.total_amount),
        )

    logger.info("Order %s settled via %s (%s)", order.pk, source, outcome)
    return WebhookResult(outcome, order_id=str(order.pk))


def _find_existing(session_id, order_id):
    if session_id:
        order = Order.objects.filter(session_id=session_id).first()
        if order is not None:
            return order
    order_uuid = _uuid_or_none(order_id)
    return Order.objects.filter(pk=order_uuid).first() if order_uuid else None


def _session_completed(event_type, session):
    if session.get("payment_status") == "unpaid":
        # Delayed payment methods complete the session before the money moves.
        return WebhookResult("awaiting_payment", event_type)

    result = settle_payment(
        source="webhook",
        session_id=session.get("id"),
        order_id=session.get("client_reference_id"),
        payment_intent_id=session.get("payment_intent"),
        amount_cents=session.get("amount_total"),
        metadata=session.get("metadata") or {},
        session=session,
    )
    return WebhookResult(result.outcome, event_type, result.order_id)


def _session_expired(event_type, session):
    metadata = session.get("metadata") or {}
    with transaction.atomic():
        order = _find_order(session.get("id"), metadata.get("order_id"))
        if (
            order is None
            or order.payment_status != PaymentStatus.UNPAID
            or order.status != OrderStatus.PENDING_PAYMENT
            or order.session_id != session.get("id")
        ):
            return WebhookResult("ignored", event_type, str(order.pk) if order else None)
        apply_transition(order, {"status": OrderStatus.PENDING}, Actor.WEBHOOK)

    logger.info("Checkout session %s expired; order %s back to pending", session.get("id"), order.pk)
    return WebhookResult("reverted", event_type, str(order.pk))


HANDLERS = {
    SESSION_COMPLETED: _session_completed,
    SESSION_ASYNC_SUCCEEDED: _session_completed,
    SESSION_EXPIRED: _session_expired,
}


def handle_event(payload, signature):
    """
    Verify and apply one gateway event.

    Unknown event types are acknowledged and ignored.
    """
    event = gateway.verify_event(payload, signature)
    event_type = event.get("type", "")
    session = (event.get("data") or {}).get("object") or {}

    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.debug("Ignoring webhook event %s", event_type)
        return WebhookResult("ignored", event_type)

    logger.info("Webhook %s (%s) received", event.get("id"), event_type)
    return handler(event_type, session)
