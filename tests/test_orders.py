"""Tests for order placement, visibility, cancellation and back-office edits."""

from decimal import Decimal

import pytest
from django.db import DatabaseError
from django.db.models.query import QuerySet

from accounts.models import AuditLog
from baklava_wholesale.context import AuthContext
from baklava_wholesale.exceptions import StorageError
from orders import services
from orders.models import Order, OrderItem
from orders.state import OrderStatus, PaymentStatus

pytestmark = pytest.mark.django_db


def order_payload(lines, shipping_address, **extra):
    return {
        "items": [{"product_id": product.pk, "quantity": quantity} for product, quantity in lines],
        "shipping_address": shipping_address,
        **extra,
    }


class TestCreateOrder:
    def test_totals_come_from_catalog(self, customer_api, pistachio, shipping_address):
        payload = order_payload([(pistachio, 5)], shipping_address)
        payload["items"][0]["unit_price"] = "0.01"

        response = customer_api.post("/api/orders/", payload, format="json")

        assert response.status_code == 201
        assert response.data["subtotal"] == "144.95"
        assert response.data["tax_amount"] == "14.50"
        assert response.data["total_amount"] == "159.45"
        assert response.data["totals"]["total"] == "159.45"
        assert response.data["items"][0]["unit_price"] == "28.99"
        assert response.data["items"][0]["product_name"] == "Pistachio baklava"

    def test_cash_order_lines_add_up(self, customer_api, pistachio, walnut, shipping_address):
        payload = order_payload([(pistachio, 2), (walnut, 4)], shipping_address, payment_method="cash")

        response = customer_api.post("/api/orders/", payload, format="json")

        assert response.status_code == 201
        order = Order.objects.get(pk=response.data["id"])
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.UNPAID
        assert order.payment_method == "cash"
        assert sum(item.subtotal for item in order.items.all()) == order.subtotal
        assert order.total_amount == order.subtotal + order.tax_amount

    def test_missing_postal_code_creates_nothing(self, customer_api, pistachio, shipping_address):
        del shipping_address["postal_code"]
        shipping_address["city"] = "  "

        response = customer_api.post("/api/orders/", order_payload([(pistachio, 1)], shipping_address), format="json")

        assert response.status_code == 400
        assert "postal_code" in response.data["error"]
        assert "city" in response.data["error"]
        assert "shipping_address" in response.data["fields"]
        assert Order.objects.count() == 0

    def test_minimum_quantity(self, customer_api, walnut, shipping_address):
        response = customer_api.post("/api/orders/", order_payload([(walnut, 2)], shipping_address), format="json")

        assert response.status_code == 400
        assert "Minimum order quantity" in response.data["error"]

    def test_inactive_product_rejected(self, customer_api, retired_product, shipping_address):
        response = customer_api.post(
            "/api/orders/", order_payload([(retired_product, 1)], shipping_address), format="json"
        )

        assert response.status_code == 400
        assert str(retired_product.pk) in response.data["error"]

    def test_duplicate_lines_rejected(self, customer_api, pistachio, shipping_address):
        response = customer_api.post(
            "/api/orders/", order_payload([(pistachio, 1), (pistachio, 2)], shipping_address), format="json"
        )

        assert response.status_code == 400

    def test_empty_cart_rejected(self, customer_api, shipping_address):
        response = customer_api.post("/api/orders/", {"items": [], "shipping_address": shipping_address}, format="json")

        assert response.status_code == 400
        assert Order.objects.count() == 0

    def test_unapproved_account_cannot_order(self, pending_api, pistachio, shipping_address):
        response = pending_api.post("/api/orders/", order_payload([(pistachio, 1)], shipping_address), format="json")

        assert response.status_code == 403
        assert "approved" in response.data["error"]

    def test_anonymous_cannot_order(self, api_client, pistachio, shipping_address):
        response = api_client.post("/api/orders/", order_payload([(pistachio, 1)], shipping_address), format="json")

        assert response.status_code == 401

    def test_line_failure_rolls_back_order(self, monkeypatch, customer, pistachio, shipping_address):
        def broken_bulk_create(self, objs, *args, **kwargs):
            raise DatabaseError("disk full")

        monkeypatch.setattr(QuerySet, "bulk_create", broken_bulk_create)

        with pytest.raises(StorageError):
            services.create_order(
                AuthContext.for_user(customer),
                [{"product_id": pistachio.pk, "quantity": 1}],
                shipping_address,
            )

        assert Order.objects.count() == 0
        assert OrderItem.objects.count() == 0


class TestOrderVisibility:
    def test_list_only_own_orders(self, customer_api, customer, other_customer, pistachio, place_order):
        mine = place_order(customer, [(pistachio, 1)])
        place_order(other_customer, [(pistachio, 2)])

        response = customer_api.get("/api/orders/")

        assert response.status_code == 200
        assert response.data["count"] == 1
        assert response.data["results"][0]["id"] == str(mine.pk)

    def test_other_account_order_is_not_found(self, other_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])

        for response in (
            other_api.get(f"/api/orders/{order.pk}/"),
            other_api.get(f"/api/orders/{order.pk}/status/"),
            other_api.post(f"/api/orders/{order.pk}/cancel/"),
        ):
            assert response.status_code == 404
            assert response.data == {"error": "Order not found."}

        assert Order.objects.filter(pk=order.pk).exists()

    def test_detail_in_requested_language(self, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])

        response = customer_api.get(f"/api/orders/{order.pk}/?lang=es")

        assert response.status_code == 200
        assert response.data["items"][0]["product_name"] == "Baklava de pistacho"

    def test_status_endpoint(self, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])

        response = customer_api.get(f"/api/orders/{order.pk}/status/")

        assert response.data == {
            "order_id": str(order.pk),
            "status": "pending",
            "payment_status": "unpaid",
            "settled": False,
        }


class TestCancelOrder:
    def test_unpaid_order_is_deleted_and_audited(self, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 3)])

        response = customer_api.post(f"/api/orders/{order.pk}/cancel/")

        assert response.status_code == 200
        assert response.data == {"ok": True, "result": "deleted"}
        assert not Order.objects.filter(pk=order.pk).exists()
        assert OrderItem.objects.count() == 0
        entry = AuditLog.objects.get(action="ORDER_DELETE")
        assert entry.resource_id == str(order.pk)
        assert entry.metadata["items"][0]["quantity"] == 3

    def test_paid_order_is_skipped(self, customer_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])
        Order.objects.filter(pk=order.pk).update(payment_status=PaymentStatus.PAID, status=OrderStatus.PROCESSING)

        response = customer_api.post(f"/api/orders/{order.pk}/cancel/")

        assert response.status_code == 200
        assert response.data == {"ok": True, "result": "skipped", "reason": "already_paid"}
        stored = Order.objects.get(pk=order.pk)
        assert stored.payment_status == PaymentStatus.PAID
        assert stored.items.count() == 1


class TestAdminOrders:
    def test_requires_admin(self, customer_api):
        assert customer_api.get("/api/admin/orders/").status_code == 403
        assert customer_api.get("/api/admin/dashboard/").status_code == 403

    def test_list_filters_and_paginates(self, admin_api, customer, other_customer, pistachio, place_order):
        place_order(customer, [(pistachio, 1)])
        place_order(customer, [(pistachio, 2)])
        place_order(other_customer, [(pistachio, 3)])

        response = admin_api.get("/api/admin/orders/", {"q": "cafe valencia", "pageSize": 1})

        assert response.status_code == 200
        assert response.data["count"] == 2
        assert response.data["total_pages"] == 2
        assert len(response.data["results"]) == 1
        assert response.data["results"][0]["business_name"] == "Cafe Valencia"
        assert response.data["results"][0]["user_email"] == customer.email

    def test_list_by_order_id(self, admin_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])
        place_order(customer, [(pistachio, 2)])

        response = admin_api.get("/api/admin/orders/", {"q": str(order.pk)})

        assert response.data["count"] == 1
        assert response.data["results"][0]["id"] == str(order.pk)

    def test_page_size_is_bounded(self, admin_api):
        response = admin_api.get("/api/admin/orders/", {"page_size": 500})

        assert response.status_code == 400

    def test_table_transition(self, admin_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)], payment_method="cash")

        response = admin_api.patch(
            f"/api/admin/orders/{order.pk}/",
            {"status": "processing", "payment_status": "paid"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["status"] == "processing"
        assert response.data["payment_status"] == "paid"
        assert response.data["paid_at"] is not None
        assert AuditLog.objects.filter(action="ORDER_STATUS_UPDATE", resource_id=str(order.pk)).exists()

    def test_off_table_move_needs_force(self, admin_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])

        refused = admin_api.patch(f"/api/admin/orders/{order.pk}/", {"status": "delivered"}, format="json")
        forced = admin_api.patch(
            f"/api/admin/orders/{order.pk}/",
            {"status": "delivered", "force": True, "reason": "delivered by hand"},
            format="json",
        )

        assert refused.status_code == 409
        assert forced.status_code == 200
        assert forced.data["delivered_at"] is not None
        entry = AuditLog.objects.get(action="ORDER_STATUS_OVERRIDE")
        assert entry.metadata["reason"] == "delivered by hand"
        assert entry.metadata["transitions"][0]["forced"] is True

    def test_invalid_status_value(self, admin_api, customer, pistachio, place_order):
        order = place_order(customer, [(pistachio, 1)])

        response = admin_api.patch(f"/api/admin/orders/{order.pk}/", {"status": "lost"}, format="json")

        assert response.status_code == 400

    def test_dashboard(self, admin_api, customer, pistachio, pending_customer, place_order):
        paid = place_order(customer, [(pistachio, 5)])
        place_order(customer, [(pistachio, 1)])
        Order.objects.filter(pk=paid.pk).update(payment_status=PaymentStatus.PAID, status=OrderStatus.PROCESSING)

        response = admin_api.get("/api/admin/dashboard/")

        assert response.status_code == 200
        assert response.data["orders"] == 2
        assert response.data["revenue"] == str(Decimal("159.45"))
        assert response.data["pending_approvals"] == 1
        assert response.data["orders_by_status"] == {"processing": 1, "pending": 1}
