"""
Product models for the wholesale catalog.

Localizable text is stored as a JSON map keyed by language tag
(``{"en": "...", "es": "..."}``) rather than one column per language, so
adding a language is a settings change and not a schema change.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

SUPPORTED_LANGUAGES = ("en", "es")
DEFAULT_LANGUAGE = "en"

LOCALIZED_FIELDS = (
    "name",
    "description",
    "long_description",
    "ingredients",
    "packaging",
    "shelf_life",
    "storage",
)


def localize(value, lang=DEFAULT_LANGUAGE):
    """
    Pick the text for ``lang`` out of a localized map.

    Falls back to the default language, then to any non-empty entry.
    """
    if not value:
        return ""
    if isinstance(value, str):
        return value
    for candidate in (lang, DEFAULT_LANGUAGE):
        text = value.get(candidate)
        if text:
            return text
    for text in value.values():
        if text:
            return text
    return ""


def validate_localized_map(value):
    if not isinstance(value, dict):
        raise ValidationError(_("Expected an object keyed by language code."))
    unknown = set(value) - set(SUPPORTED_LANGUAGES)
    if unknown:
        raise ValidationError(
            _("Unsupported language(s): %(langs)s") % {"langs": ", ".join(sorted(unknown))}
        )
    for text in value.values():
        if not isinstance(text, str):
            raise ValidationError(_("Localized values must be strings."))


class Product(models.Model):
    """
    Represents a product in the wholesale catalog.

    - Prices are stored as Decimal; they are only authoritative at order time
    - ``min_order_quantity`` is enforced when an order line is created
    - Soft deletion (is_active) keeps products referenced by old orders
    """

    class Unit(models.TextChoices):
        BOX = "box", _("Box")
        KG = "kg", _("Kilogram")
        TRAY = "tray", _("Tray")
        UNIT = "unit", _("Unit")

    name = models.JSONField(
        default=dict,
        validators=[validate_localized_map],
        help_text=_("Product name per language"),
    )
    description = models.JSONField(default=dict, blank=True, validators=[validate_localized_map])
    long_description = models.JSONField(default=dict, blank=True, validators=[validate_localized_map])
    ingredients = models.JSONField(default=dict, blank=True, validators=[validate_localized_map])
    packaging = models.JSONField(default=dict, blank=True, validators=[validate_localized_map])
    shelf_life = models.JSONField(default=dict, blank=True, validators=[validate_localized_map])
    storage = models.JSONField(default=dict, blank=True, validators=[validate_localized_map])

    # Using DecimalField to avoid floating-point precision issues
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text=_("Wholesale price per unit, tax excluded"),
    )
    unit = models.CharField(max_length=10, choices=Unit.choices, default=Unit.BOX)
    min_order_quantity = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
        help_text=_("Smallest quantity accepted on an order line"),
    )
    display_order = models.IntegerField(default=0, db_index=True)
    image_url = models.URLField(max_length=500, blank=True)
    category = models.CharField(max_length=100, blank=True, db_index=True)

    is_active = models.BooleanField(
        default=True,
        help_text=_("If False, product is hidden from customers but preserved for old orders"),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["display_order", "id"]
        indexes = [
            models.Index(fields=["is_active", "display_order"], name="product_active_order_idx"),
        ]
        verbose_name = _("Product")
        verbose_name_plural = _("Products")

    def __str__(self):
        return self.display_name()

    def display_name(self, lang=DEFAULT_LANGUAGE):
        return localize(self.name, lang) or f"Product {self.pk}"
