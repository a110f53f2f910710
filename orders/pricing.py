"""
Order money calculator.

All arithmetic happens in integer cents and is converted back to
``Decimal`` at the edges. The same inputs always give the same cents, so
a total computed at order creation, at checkout and on redisplay can be
compared for equality against what the payment gateway charged.

Rounding is half-up everywhere (unit price to cents and the tax amount).
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

from baklava_wholesale.exceptions import ValidationError

CENT = Decimal("0.01")


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    tax_cents: int
    rate: Decimal

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.tax_cents

    @property
    def subtotal(self) -> Decimal:
        return from_cents(self.subtotal_cents)

    @property
    def tax(self) -> Decimal:
        return from_cents(self.tax_cents)

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)

    def as_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
            "tax_rate": str(self.rate),
        }


def default_rate() -> Decimal:
    return Decimal(str(settings.TAX_RATE))


def _to_decimal(value, label) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError({label: [f"{label} must be a number."]})
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError({label: [f"{label} must be a number."]})
    if not number.is_finite():
        raise ValidationError({label: [f"{label} must be finite."]})
    if number < 0:
        raise ValidationError({label: [f"{label} cannot be negative."]})
    return number


def to_cents(value) -> int:
    """Convert an amount in currency units to integer cents (half-up)."""
    amount = _to_decimal(value, "price")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)


def tax_cents(subtotal_cents: int, rate) -> int:
    return int((Decimal(subtotal_cents) * Decimal(str(rate))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _line(item):
    if isinstance(item, Mapping):
        return item.get("price"), item.get("quantity")
    price, quantity = item
    return price, quantity


def line_cents(price, quantity) -> int:
    qty = _to_decimal(quantity, "quantity")
    if qty != qty.to_integral_value():
        raise ValidationError({"quantity": ["quantity must be a whole number."]})
    return to_cents(price) * int(qty)


def calc_totals(items, rate=None) -> Totals:
    """
    Compute subtotal, tax and total for ``items``.

    ``items`` is a sequence of ``(price, quantity)`` pairs or mappings with
    ``price`` and ``quantity`` keys. An empty sequence gives zero totals.
    """
    rate = default_rate() if rate is None else _to_decimal(rate, "tax_rate")
    subtotal = sum(line_cents(*_line(item)) for item in items)
    return Totals(subtotal_cents=subtotal, tax_cents=tax_cents(subtotal, rate), rate=rate)
