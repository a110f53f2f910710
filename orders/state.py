"""
Order state machine.

``status`` (fulfilment) and ``payment_status`` (money) are two separate
machines. Each has an explicit table of ``current -> {target: actors}``;
anything not in the table is refused unless an administrator forces it,
in which case the transition is flagged so the caller can audit it.

Writes go through ``apply_transition`` which performs a compare-and-swap
on the row's ``version`` column: a concurrent writer that got there
first turns the second write into a ``ConflictError`` instead of a lost
update.
"""

from dataclasses import dataclass

from django.db import models
from django.db.models import F
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from baklava_wholesale.exceptions import ConflictError, ValidationError


class OrderStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    PENDING_PAYMENT = "pending_payment", _("Pending payment")
    PROCESSING = "processing", _("Processing")
    SHIPPED = "shipped", _("Shipped")
    DELIVERED = "delivered", _("Delivered")
    CANCELLED = "cancelled", _("Cancelled")


class PaymentStatus(models.TextChoices):
    UNPAID = "unpaid", _("Unpaid")
    PAID = "paid", _("Paid")
    REFUNDED = "refunded", _("Refunded")


class PaymentMethod(models.TextChoices):
    CARD = "card", _("Card")
    CASH = "cash", _("Cash on delivery")


class Actor(models.TextChoices):
    CUSTOMER = "customer", _("Customer")
    ADMIN = "admin", _("Administrator")
    WEBHOOK = "webhook", _("Payment webhook")
    SYSTEM = "system", _("System")


_GATEWAY = {Actor.WEBHOOK, Actor.SYSTEM}

STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.PENDING_PAYMENT: {Actor.CUSTOMER, Actor.SYSTEM},
        OrderStatus.PROCESSING: _GATEWAY | {Actor.ADMIN},
        OrderStatus.CANCELLED: {Actor.ADMIN},
    },
    OrderStatus.PENDING_PAYMENT: {
        OrderStatus.PENDING: _GATEWAY | {Actor.ADMIN},
        OrderStatus.PROCESSING: _GATEWAY | {Actor.ADMIN},
        OrderStatus.CANCELLED: {Actor.ADMIN},
    },
    OrderStatus.PROCESSING: {
        OrderStatus.SHIPPED: {Actor.ADMIN},
        OrderStatus.CANCELLED: {Actor.ADMIN},
    },
    OrderStatus.SHIPPED: {
        OrderStatus.DELIVERED: {Actor.ADMIN},
    },
    OrderStatus.DELIVERED: {},
    OrderStatus.CANCELLED: {},
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.UNPAID: {
        # Admins record cash collected on delivery.
        PaymentStatus.PAID: _GATEWAY | {Actor.ADMIN},
    },
    PaymentStatus.PAID: {
        PaymentStatus.REFUNDED: {Actor.ADMIN},
    },
    PaymentStatus.REFUNDED: {},
}

TABLES = {
    "status": (OrderStatus, STATUS_TRANSITIONS),
    "payment_status": (PaymentStatus, PAYMENT_TRANSITIONS),
}

TERMINAL_PAYMENT_STATES = frozenset({PaymentStatus.PAID, PaymentStatus.REFUNDED})
TERMINAL_ORDER_STATES = frozenset({OrderStatus.CANCELLED})


@dataclass(frozen=True)
class Transition:
    field: str
    current: str
    target: str
    actor: str
    forced: bool = False

    @property
    def changed(self) -> bool:
        return self.current != self.target


def parse(field, value):
    """Return ``value`` as a member of the enum behind ``field``."""
    enum, _table = TABLES[field]
    try:
        return enum(value)
    except ValueError:
        allowed = ", ".join(enum.values)
        raise ValidationError({field: [f"'{value}' is not valid. Choose one of: {allowed}."]})


def allowed_targets(field, current, actor):
    _enum, table = TABLES[field]
    return {target for target, actors in table.get(current, {}).items() if actor in actors}


def check_transition(field, current, target, actor, force=False) -> Transition:
    """
    Validate moving ``field`` from ``current`` to ``target`` for ``actor``.

    Staying in the same state is always allowed. Only an administrator may
    force a move outside the table.
    """
    current = parse(field, current)
    target = parse(field, target)
    actor = Actor(actor)

    if current == target or target in allowed_targets(field, current, actor):
        return Transition(field, current, target, actor)

    if force and actor == Actor.ADMIN:
        return Transition(field, current, target, actor, forced=True)

    raise ConflictError(f"Cannot change {field} from '{current}' to '{target}'.")


def is_settled(payment_status, status=None) -> bool:
    """True once nothing further will happen to the payment."""
    return payment_status in TERMINAL_PAYMENT_STATES or status in TERMINAL_ORDER_STATES


def timestamp_updates(transitions, now=None):
    """Milestone timestamps implied by a set of transitions."""
    now = now or timezone.now()
    updates = {}
    for transition in transitions:
        if not transition.changed:
            continue
        if transition.field == "payment_status" and transition.target == PaymentStatus.PAID:
            updates["paid_at"] = now
        elif transition.field == "status" and transition.target == OrderStatus.SHIPPED:
            updates["shipped_at"] = now
        elif transition.field == "status" and transition.target == OrderStatus.DELIVERED:
            updates["delivered_at"] = now
    return updates


def apply_transition(order, changes, actor, force=False):
    """
    Validate and persist ``changes`` on ``order`` in one conditional update.

    ``changes`` maps column names to new values; ``status`` and
    ``payment_status`` entries are checked against the transition tables,
    other columns (``session_id``, ``payment_intent_id``, ...) ride along.
    The update only lands if the row still has the ``version`` and state
    values ``order`` was read with. Returns the list of ``Transition``.
    """
    transitions = [
        check_transition(field, getattr(order, field), changes[field], actor, force=force)
        for field in ("status", "payment_status")
        if field in changes
    ]

    values = dict(changes)
    for transition in transitions:
        values[transition.field] = transition.target
    for column, value in timestamp_updates(transitions).items():
        values.setdefault(column, value)
    values["updated_at"] = timezone.now()

    expected = {"pk": order.pk, "version": order.version}
    for transition in transitions:
        expected[transition.field] = transition.current

    updated = type(order).objects.filter(**expected).update(version=F("version") + 1, **values)
    if updated == 0:
        raise ConflictError("The order was modified concurrently; reload and try again.")

    for column, value in values.items():
        setattr(order, column, value)
    order.version += 1
    return transitions
