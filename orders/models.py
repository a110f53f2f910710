"""
Order models for the wholesale storefront.

Order and OrderItem represent a business customer's purchase:
- Totals are computed once at creation and never recomputed
- Line items capture the catalog price at order time
- ``version`` backs the compare-and-swap writes in ``orders.state``
- ``session_id`` correlates an order with its hosted checkout session
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from .state import OrderStatus, PaymentMethod, PaymentStatus, is_settled

SHIPPING_FIELDS = ("full_name", "phone", "address", "city", "postal_code", "country")


class Order(models.Model):
    """
    Represents a customer purchase.

    - Money uses DecimalField; the calculator works in integer cents
    - ``total_amount == subtotal + tax_amount`` is fixed at creation
    - ``shipping_address`` is a snapshot, not a reference to the profile
    """

    # Re-exported so callers can write Order.Status.PAID and friends.
    Status = OrderStatus
    PaymentStatus = PaymentStatus
    PaymentMethod = PaymentMethod

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,  # Prevent deletion of users with orders
        related_name='orders',
        help_text=_("Business account that placed this order"),
    )

    subtotal = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("Sum of all order lines before tax"),
    )
    tax_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal('0.1000'),
        help_text=_("Tax rate applied when the order was placed"),
    )
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("subtotal + tax_amount, computed once at creation"),
    )

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
        db_index=True,
    )
    payment_method = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CARD,
    )

    shipping_address = models.JSONField(
        default=dict,
        help_text=_("Snapshot of full_name, phone, address, city, postal_code, country"),
    )
    notes = models.TextField(blank=True)

    # Gateway correlation
    session_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    payment_intent_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)

    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']  # Newest orders first
        indexes = [
            models.Index(fields=['user', 'created_at'], name='order_user_created_idx'),
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
        ]
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")

    def __str__(self):
        return f"Order {self.id} - {self.total_amount} ({self.status}/{self.payment_status})"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    @property
    def is_settled(self) -> bool:
        return is_settled(self.payment_status, self.status)

    def snapshot(self) -> dict:
        """Serializable copy of the row, kept in the audit log on deletion."""
        return {
            'id': str(self.id),
            'user_id': self.user_id,
            'subtotal': str(self.subtotal),
            'tax_amount': str(self.tax_amount),
            'total_amount': str(self.total_amount),
            'status': self.status,
            'payment_status': self.payment_status,
            'payment_method': self.payment_method,
            'session_id': self.session_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'items': [
                {
                    'product_id': item.product_id,
                    'quantity': item.quantity,
                    'unit_price': str(item.unit_price),
                }
                for item in self.items.all()
            ],
        }


class OrderItem(models.Model):
    """
    A single product line within an order.

    - ``unit_price`` is captured at order time (not a live catalog reference)
    - Items are never modified after creation
    - CASCADE on order deletion, PROTECT on product deletion
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,  # Delete items when order is deleted
        related_name='items',
    )
    product = models.ForeignKey(
        'products.Product',
        on_delete=models.PROTECT,  # Prevent deletion of products with orders
        related_name='order_items',
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("Price per unit at time of order (snapshot)"),
    )
    subtotal = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("unit_price x quantity"),
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']
        constraints = [
            models.UniqueConstraint(fields=['order', 'product'], name='orderitem_unique_product'),
        ]
        verbose_name = _("Order Item")
        verbose_name_plural = _("Order Items")

    def __str__(self):
        return f"{self.quantity}x {self.product} in Order {self.order_id}"
