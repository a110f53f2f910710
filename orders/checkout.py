"""
Hosted checkout session creation and manual payment confirmation.
"""

import logging

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction

from accounts.audit import log_action
from baklava_wholesale.exceptions import (
    ConflictError,
    CorrelationLostError,
    NotFoundError,
    ValidationError,
)
from monitoring.alerts import raise_alert
from monitoring.models import Alert

from . import gateway
from .models import Order
from .pricing import calc_totals, to_cents
from .services import catalog_lines, get_order
from .state import Actor, OrderStatus, PaymentStatus, apply_transition
from .webhooks import settle_payment

logger = logging.getLogger(__name__)

_CHECKOUT_STATES = {OrderStatus.PENDING, OrderStatus.PENDING_PAYMENT}


def _own_order(ctx, order_id):
    try:
        return Order.objects.prefetch_related("items").get(pk=order_id, user_id=ctx.user_id)
    except (Order.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFoundError("Order not found.")


def _requested_quantities(items):
    quantities = {}
    for item in items:
        try:
            quantities[int(item["product_id"])] = int(item["quantity"])
        except (KeyError, TypeError, ValueError):
            raise ValidationError({"items": ["Each item needs a product_id and a quantity."]})
    return quantities


def success_url(order):
    return f"{settings.SITE_URL}/checkout/success?orderId={order.pk}&session_id={{CHECKOUT_SESSION_ID}}"


def cancel_url(order):
    return f"{settings.SITE_URL}/checkout/cancel?orderId={order.pk}"


def start_checkout(ctx, order_id, items=None):
    """
    Open a hosted checkout session for one of the caller's unpaid orders.

    The amount is recomputed from current catalog prices and must match
    the stored total; a stored total is never rewritten. Returns
    ``{"url", "session_id", "totals"}``.
    """
    ctx.require_approved()
    order = _own_order(ctx, order_id)

    if order.is_paid:
        raise ConflictError("This order has already been paid.")
    if order.payment_status != PaymentStatus.UNPAID or order.status not in _CHECKOUT_STATES:
        raise ConflictError(f"An order in '{order.status}/{order.payment_status}' cannot be paid online.")

    stored = {item.product_id: item.quantity for item in order.items.all()}
    if items is not None and _requested_quantities(items) != stored:
        raise ValidationError({"items": ["Items do not match the order."]})

    lines = catalog_lines(stored)
    totals = calc_totals([(product.price, quantity) for product, quantity in lines], rate=order.tax_rate)
    if totals.total_cents != to_cents(order.total_amount):
        logger.warning(
            "Order %s total %s no longer matches catalog total %s", order.pk, order.total_amount, totals.total
        )
        raise ConflictError("Catalog prices changed since this order was placed. Please place a new order.")

    session_id, url = gateway.create_checkout_session(
        order, totals, success_url(order), cancel_url(order), customer_email=ctx.email or None
    )

    try:
        with transaction.atomic():
            current = Order.objects.select_for_update().get(pk=order.pk)
            apply_transition(
                current,
                {"status": OrderStatus.PENDING_PAYMENT, "session_id": session_id},
                Actor.CUSTOMER,
            )
    except (DatabaseError, ConflictError, Order.DoesNotExist) as exc:
        logger.critical("Checkout session %s could not be attached to order %s: %s", session_id, order.pk, exc)
        raise_alert(
            Alert.AlertType.RECONCILIATION,
            Alert.Severity.CRITICAL,
            "Checkout session not linked to order",
            f"Session {session_id} was created but order {order.pk} could not be updated.",
            "checkout",
            order_id=str(order.pk),
            session_id=session_id,
            amount_cents=totals.total_cents,
        )
        raise CorrelationLostError() from exc

    log_action(ctx, "CHECKOUT_STARTED", "ORDER", order.pk, metadata={"session_id": session_id, **totals.as_dict()})
    return {"url": url, "session_id": session_id, "totals": totals.as_dict()}


def confirm_payment_intent(ctx, order_id, payment_intent_id):
    """
    Confirm a card payment by looking the PaymentIntent up at the gateway.

    A succeeded intent settles the order through the same path as the
    webhook; anything else is reported back without touching the order.
    """
    if not payment_intent_id:
        raise ValidationError({"payment_intent_id": ["This field is required."]})
    order = get_order(ctx, order_id)

    intent = gateway.retrieve_payment_intent(payment_intent_id)
    intent_order = intent["metadata"].get("order_id")
    if intent_order and intent_order != str(order.pk):
        raise ValidationError({"payment_intent_id": ["This payment belongs to a different order."]})

    if intent["status"] != "succeeded":
        return {"paid": False, "status": intent["status"], "order_id": str(order.pk)}

    result = settle_payment(
        source="confirm",
        order_id=str(order.pk),
        user_id=order.user_id,
        payment_intent_id=intent["id"],
        amount_cents=intent["amount"],
        metadata=intent["metadata"],
    )
    return {
        "paid": result.outcome in ("paid", "already_paid", "created"),
        "status": result.outcome,
        "order_id": str(order.pk),
    }
