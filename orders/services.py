"""
Order services.

Every function takes the caller's ``AuthContext`` first and enforces
ownership or role itself, so views stay thin and the rules hold for
every entry point (API, management commands, tests).
"""

import logging
import math
import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.db.models import Count, Q, Sum
from django.utils.dateparse import parse_date

from accounts.audit import log_action
from baklava_wholesale.exceptions import NotFoundError, StorageError, ValidationError
from products.models import Product

from .models import SHIPPING_FIELDS, Order, OrderItem
from .pricing import calc_totals
from .state import Actor, OrderStatus, PaymentMethod, PaymentStatus, apply_transition, parse

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _validate_items(items):
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError({"items": ["At least one item is required."]})

    quantities = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError({"items": [f"Item {index} must be an object."]})
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if product_id in (None, ""):
            raise ValidationError({"items": [f"Item {index} is missing product_id."]})
        try:
            product_id = int(product_id)
        except (TypeError, ValueError):
            raise ValidationError({"items": [f"Item {index} has an invalid product_id."]})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError({"items": [f"Item {index} quantity must be a positive whole number."]})
        if product_id in quantities:
            raise ValidationError({"items": [f"Product {product_id} appears more than once."]})
        quantities[product_id] = quantity
    return quantities


def validate_shipping_address(address):
    """Return a cleaned copy of ``address`` with all six fields present."""
    if not isinstance(address, dict):
        raise ValidationError({"shipping_address": ["Shipping address is required."]})
    cleaned = {field: str(address.get(field) or "").strip() for field in SHIPPING_FIELDS}
    missing = [field for field, value in cleaned.items() if not value]
    if missing:
        raise ValidationError(
            {"shipping_address": [f"Missing required field(s): {', '.join(missing)}."]}
        )
    return cleaned


def catalog_lines(quantities):
    """
    Re-read products and prices from the catalog.

    Returns ``[(product, quantity)]`` in request order; a missing or
    inactive product is a ``ValidationError``.
    """
    products = Product.objects.filter(pk__in=quantities.keys(), is_active=True).in_bulk()
    missing = [str(pk) for pk in quantities if pk not in products]
    if missing:
        raise ValidationError({"items": [f"Unknown or unavailable product(s): {', '.join(missing)}."]})
    return [(products[pk], quantity) for pk, quantity in quantities.items()]


def create_order(ctx, items, shipping_address, payment_method=PaymentMethod.CARD, notes=""):
    """
    Place an order for the caller.

    Prices come from the catalog, never from the request. The order row
    and its lines are written in one transaction: if any line fails the
    order disappears with it.
    """
    ctx.require_approved()
    quantities = _validate_items(items)
    address = validate_shipping_address(shipping_address)
    method = PaymentMethod(payment_method) if payment_method in PaymentMethod.values else None
    if method is None:
        raise ValidationError({"payment_method": [f"'{payment_method}' is not a valid payment method."]})

    lines = catalog_lines(quantities)
    for product, quantity in lines:
        if quantity < product.min_order_quantity:
            raise ValidationError(
                {
                    "items": [
                        f"Minimum order quantity for {product.display_name()} is {product.min_order_quantity}."
                    ]
                }
            )

    totals = calc_totals([(product.price, quantity) for product, quantity in lines])

    try:
        with transaction.atomic():
            order = Order.objects.create(
                user_id=ctx.user_id,
                subtotal=totals.subtotal,
                tax_amount=totals.tax,
                tax_rate=totals.rate,
                total_amount=totals.total,
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
                payment_method=method,
                shipping_address=address,
                notes=(notes or "").strip(),
            )
            OrderItem.objects.bulk_create(
                [
                    OrderItem(
                        order=order,
                        product=product,
                        quantity=quantity,
                        unit_price=product.price,
                        subtotal=(product.price * quantity).quantize(Decimal("0.01")),
                    )
                    for product, quantity in lines
                ]
            )
    except DatabaseError as exc:
        logger.exception("Order creation failed for user %s", ctx.user_id)
        raise StorageError("The order could not be saved.") from exc

    logger.info("Order %s created for user %s, total %s", order.id, ctx.user_id, totals.total)
    return order, totals


def _owned(ctx, queryset):
    return queryset if ctx.is_admin else queryset.filter(user_id=ctx.user_id)


def get_order(ctx, order_id, for_update=False):
    """
    Fetch an order visible to the caller.

    Another account's order is reported exactly like a missing one.
    """
    queryset = _owned(ctx, Order.objects.all())
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=order_id)
    except (Order.DoesNotExist, ValueError, DjangoValidationError):
        raise NotFoundError("Order not found.")


def list_orders(ctx):
    return (
        Order.objects.filter(user_id=ctx.user_id)
        .prefetch_related("items__product")
        .order_by("-created_at")
    )


def cancel_order(ctx, order_id):
    """
    Remove one of the caller's unpaid orders.

    A paid order is left untouched and reported as skipped. Deletion is
    recorded in the audit log with a snapshot of the row.
    """
    with transaction.atomic():
        queryset = Order.objects.select_for_update().filter(user_id=ctx.user_id)
        try:
            order = queryset.get(pk=order_id)
        except (Order.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError("Order not found.")

        if order.is_paid:
            logger.info("Cancel of paid order %s skipped", order.id)
            return {"result": "skipped", "reason": "already_paid"}

        snapshot = order.snapshot()
        order.items.all().delete()
        order.delete()
        log_action(ctx, "ORDER_DELETE", "ORDER", snapshot["id"], metadata=snapshot)

    logger.info("Order %s deleted by its owner %s", snapshot["id"], ctx.user_id)
    return {"result": "deleted"}


def admin_update_order(ctx, order_id, status=None, payment_status=None, force=False, reason=""):
    """
    Change an order's status and/or payment status as an administrator.

    Moves outside the transition table need ``force=True`` and are
    audited as overrides.
    """
    ctx.require_admin()
    changes = {}
    if status is not None:
        changes["status"] = parse("status", status)
    if payment_status is not None:
        changes["payment_status"] = parse("payment_status", payment_status)
    if not changes:
        raise ValidationError({"status": ["Provide status and/or payment_status."]})

    with transaction.atomic():
        order = get_order(ctx, order_id, for_update=True)
        transitions = apply_transition(order, changes, Actor.ADMIN, force=force)
        forced = any(t.forced for t in transitions)
        log_action(
            ctx,
            "ORDER_STATUS_OVERRIDE" if forced else "ORDER_STATUS_UPDATE",
            "ORDER",
            order.pk,
            metadata={
                "transitions": [
                    {"field": t.field, "from": t.current, "to": t.target, "forced": t.forced}
                    for t in transitions
                ],
                "reason": reason,
            },
        )

    if forced:
        logger.warning("Forced order update on %s by %s: %s", order.pk, ctx.email, changes)
    return order


def _page_number(value, name, default, upper=None):
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError({name: [f"{name} must be a whole number."]})
    if number < 1 or (upper is not None and number > upper):
        limit = f" between 1 and {upper}" if upper else " at least 1"
        raise ValidationError({name: [f"{name} must be{limit}."]})
    return number


def _date(value, name):
    if not value:
        return None
    parsed = parse_date(str(value)[:10])
    if parsed is None:
        raise ValidationError({name: [f"{name} must be a date (YYYY-MM-DD)."]})
    return parsed


def admin_list_orders(ctx, status=None, q="", date_from=None, date_to=None, page=1, page_size=20):
    """
    Back-office order search.

    ``q`` matches an order id, a user id or a business name / e-mail
    fragment. ``date_from`` and ``date_to`` are inclusive calendar days.
    """
    ctx.require_admin()
    page = _page_number(page, "page", 1)
    page_size = _page_number(page_size, "page_size", 20, upper=MAX_PAGE_SIZE)

    queryset = Order.objects.select_related("user").order_by("-created_at")
    if status:
        queryset = queryset.filter(status=parse("status", status))

    q = (q or "").strip()
    if q:
        try:
            queryset = queryset.filter(pk=uuid.UUID(q))
        except ValueError:
            text = Q(user__business_name__icontains=q) | Q(user__email__icontains=q)
            if q.isdigit():
                text |= Q(user_id=int(q))
            queryset = queryset.filter(text)

    start = _date(date_from, "date_from")
    end = _date(date_to, "date_to")
    if start:
        queryset = queryset.filter(created_at__date__gte=start)
    if end:
        queryset = queryset.filter(created_at__date__lte=end)

    count = queryset.count()
    offset = (page - 1) * page_size
    return {
        "orders": list(queryset[offset:offset + page_size]),
        "count": count,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(count / page_size) if count else 0,
    }


def dashboard_stats(ctx):
    ctx.require_admin()
    User = get_user_model()
    revenue = (
        Order.objects.filter(payment_status=PaymentStatus.PAID).aggregate(total=Sum("total_amount"))["total"]
        or Decimal("0.00")
    )
    by_status = {
        row["status"]: row["n"]
        for row in Order.objects.order_by().values("status").annotate(n=Count("id"))
    }
    return {
        "orders": Order.objects.count(),
        "users": User.objects.filter(role=User.Role.USER).count(),
        "revenue": str(revenue),
        "pending_approvals": User.objects.filter(
            approval_status__in=[User.ApprovalStatus.PENDING, User.ApprovalStatus.REQUEST_DOCS]
        ).count(),
        "orders_by_status": by_status,
    }
