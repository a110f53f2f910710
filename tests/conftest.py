"""Pytest fixtures for the wholesale storefront tests."""

import hashlib
import hmac
import json
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe
from rest_framework.test import APIClient

from accounts.models import User
from baklava_wholesale.context import AuthContext
from orders import services
from products.models import Product

WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "Pistachio-Syrup-42"

SHIPPING_ADDRESS = {
    "full_name": "Marta Ruiz",
    "phone": "+34 600 000 000",
    "address": "Calle de la Paz 12",
    "city": "Valencia",
    "postal_code": "46003",
    "country": "ES",
}


@pytest.fixture(autouse=True)
def wholesale_settings(settings):
    """Deterministic settings for every test."""
    settings.RATELIMIT_ENABLE = False
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.STRIPE_SECRET_KEY = "sk_test_dummy"
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    settings.TAX_RATE = Decimal("0.10")
    settings.SITE_URL = "https://shop.example.test"
    settings.CONFIRMATION_POLL_DELAY = 0
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
    return settings


def make_user(email, approval_status=User.ApprovalStatus.APPROVED, role=User.Role.USER, **extra):
    return User.objects.create_user(
        email=email,
        password=PASSWORD,
        business_name=extra.pop("business_name", email.split("@")[0].title()),
        approval_status=approval_status,
        role=role,
        **extra,
    )


@pytest.fixture
def customer(db):
    return make_user("buyer@cafe-valencia.test", business_name="Cafe Valencia")


@pytest.fixture
def other_customer(db):
    return make_user("owner@pasteleria.test", business_name="Pasteleria Sol")


@pytest.fixture
def pending_customer(db):
    return make_user("new@bakery.test", approval_status=User.ApprovalStatus.PENDING, business_name="New Bakery")


@pytest.fixture
def admin_user(db):
    return make_user("admin@baklava.test", role=User.Role.ADMIN, is_staff=True, business_name="Baklava HQ")


@pytest.fixture
def api_client():
    return APIClient()


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def customer_api(customer):
    return _client_for(customer)


@pytest.fixture
def other_api(other_customer):
    return _client_for(other_customer)


@pytest.fixture
def pending_api(pending_customer):
    return _client_for(pending_customer)


@pytest.fixture
def admin_api(admin_user):
    return _client_for(admin_user)


@pytest.fixture
def pistachio(db):
    return Product.objects.create(
        name={"en": "Pistachio baklava", "es": "Baklava de pistacho"},
        description={"en": "Layered filo with pistachio", "es": "Hojaldre con pistacho"},
        price=Decimal("28.99"),
        unit=Product.Unit.BOX,
        min_order_quantity=1,
        display_order=1,
        category="classic",
    )


@pytest.fixture
def walnut(db):
    return Product.objects.create(
        name={"en": "Walnut baklava", "es": "Baklava de nuez"},
        price=Decimal("15.50"),
        unit=Product.Unit.TRAY,
        min_order_quantity=3,
        display_order=2,
        category="classic",
    )


@pytest.fixture
def retired_product(db):
    return Product.objects.create(
        name={"en": "Seasonal box"},
        price=Decimal("40.00"),
        is_active=False,
        display_order=3,
    )


@pytest.fixture
def shipping_address():
    return dict(SHIPPING_ADDRESS)


@pytest.fixture
def place_order(shipping_address):
    """Create an order through the service layer."""

    def _place(user, lines, payment_method="card"):
        order, _totals = services.create_order(
            AuthContext.for_user(user),
            [{"product_id": product.pk, "quantity": quantity} for product, quantity in lines],
            shipping_address,
            payment_method=payment_method,
        )
        return order

    return _place


@pytest.fixture
def fake_stripe(monkeypatch):
    """
    Replace the Stripe SDK calls made by ``orders.gateway``.

    ``sessions`` collects the parameters of every created checkout
    session; ``intents`` maps PaymentIntent ids to canned responses.
    """
    calls = SimpleNamespace(sessions=[], intents={})

    def create_session(**params):
        calls.sessions.append(params)
        number = len(calls.sessions)
        return SimpleNamespace(
            id=f"cs_test_{number}",
            url=f"https://checkout.stripe.test/pay/cs_test_{number}",
        )

    def retrieve_intent(intent_id, *args, **kwargs):
        try:
            return calls.intents[intent_id]
        except KeyError:
            raise stripe.InvalidRequestError(f"No such payment_intent: '{intent_id}'", "id")

    def add_intent(intent_id, status, amount, **metadata):
        calls.intents[intent_id] = SimpleNamespace(id=intent_id, status=status, amount=amount, metadata=metadata)

    calls.add_intent = add_intent
    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve_intent)
    return calls


def sign_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a ``Stripe-Signature`` header for ``payload``."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_event(event_type, session_id, order_id=None, user_id=None, amount_total=None,
                   payment_status="paid", payment_intent="pi_test_1", metadata=None):
    metadata = dict(metadata or {})
    if order_id is not None:
        metadata.setdefault("order_id", str(order_id))
    if user_id is not None:
        metadata.setdefault("user_id", str(user_id))
    return {
        "id": f"evt_{session_id}",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "client_reference_id": str(order_id) if order_id is not None else None,
                "payment_status": payment_status,
                "payment_intent": payment_intent,
                "amount_total": amount_total,
                "metadata": metadata,
            }
        },
    }


@pytest.fixture
def post_webhook(api_client):
    """POST an event to the webhook endpoint, signed unless told otherwise."""

    def _post(event, signature=None):
        payload = json.dumps(event)
        headers = {}
        if signature is None:
            headers["HTTP_STRIPE_SIGNATURE"] = sign_payload(payload)
        elif signature:
            headers["HTTP_STRIPE_SIGNATURE"] = signature
        return api_client.post(
            "/api/payments/webhook/", data=payload, content_type="application/json", **headers
        )

    return _post


@pytest.fixture
def make_event():
    return checkout_event


@pytest.fixture
def sign():
    return sign_payload
