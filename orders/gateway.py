"""
Payment gateway adapter over the Stripe SDK.

Only this module talks to Stripe. SDK failures come out as
``ExternalServiceError`` and a bad webhook signature as
``AuthorizationError`` so callers deal with the project's own taxonomy.
"""

import json
import logging

import stripe
from django.conf import settings

from baklava_wholesale.exceptions import AuthorizationError, ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


def _configure():
    stripe.api_key = settings.STRIPE_SECRET_KEY


def checkout_line_items(totals, order_id, currency=None):
    """Two line entries so the payer sees the tax breakdown."""
    currency = currency or settings.STRIPE_CURRENCY
    rate_label = f"{(totals.rate * 100).normalize():f}%"
    return [
        {
            "price_data": {
                "currency": currency,
                "product_data": {"name": f"Order {order_id} subtotal"},
                "unit_amount": totals.subtotal_cents,
            },
            "quantity": 1,
        },
        {
            "price_data": {
                "currency": currency,
                "product_data": {"name": f"IVA ({rate_label})"},
                "unit_amount": totals.tax_cents,
            },
            "quantity": 1,
        },
    ]


def create_checkout_session(order, totals, success_url, cancel_url, customer_email=None):
    """
    Create a hosted checkout session charging exactly ``totals.total_cents``.

    Returns ``(session_id, url)``.
    """
    _configure()
    params = {
        "mode": "payment",
        "payment_method_types": ["card"],
        "line_items": checkout_line_items(totals, order.id),
        "success_url": success_url,
        "cancel_url": cancel_url,
        "client_reference_id": str(order.id),
        "metadata": {
            "order_id": str(order.id),
            "user_id": str(order.user_id),
            "subtotal": str(totals.subtotal),
            "tax": str(totals.tax),
            "tax_rate": str(totals.rate),
        },
    }
    if customer_email:
        params["customer_email"] = customer_email

    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as exc:
        logger.error("Checkout session creation failed for order %s: %s", order.id, exc)
        raise ExternalServiceError("The payment gateway could not create a checkout session.") from exc

    logger.info("Checkout session %s created for order %s", session.id, order.id)
    return session.id, session.url


def verify_event(payload, signature):
    """
    Verify a webhook signature and return the event as a plain dict.

    The signature is checked before the body is parsed.
    """
    if not signature:
        raise AuthorizationError("Missing webhook signature.")
    if hasattr(payload, "decode"):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.warning("Webhook body is not valid UTF-8")
            raise AuthorizationError("Invalid webhook signature.") from exc

    try:
        stripe.WebhookSignature.verify_header(
            payload,
            signature,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("Webhook signature rejected: %s", exc)
        raise AuthorizationError("Invalid webhook signature.") from exc

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise ValidationError({"payload": ["Webhook body is not valid JSON."]}) from exc
    if not isinstance(event, dict):
        raise ValidationError({"payload": ["Webhook body must be a JSON object."]})
    return event


def retrieve_payment_intent(intent_id):
    """Fetch a PaymentIntent as ``{id, status, amount, metadata}``."""
    _configure()
    try:
        intent = stripe.PaymentIntent.retrieve(intent_id)
    except stripe.InvalidRequestError as exc:
        raise ValidationError({"payment_intent_id": ["Unknown payment intent."]}) from exc
    except stripe.StripeError as exc:
        logger.error("PaymentIntent %s lookup failed: %s", intent_id, exc)
        raise ExternalServiceError("The payment gateway could not be reached.") from exc

    return {
        "id": intent.id,
        "status": intent.status,
        "amount": intent.amount,
        "metadata": dict(intent.metadata or {}),
    }
