"""Tests for operator alerts and API error rendering."""

import pytest
from django.db import DatabaseError
from django_ratelimit.exceptions import Ratelimited
from rest_framework import exceptions
from rest_framework.test import APIRequestFactory

from accounts.models import AuditLog
from baklava_wholesale.exceptions import (
    ConflictError,
    CorrelationLostError,
    NotFoundError,
    ValidationError,
    api_exception_handler,
)
from monitoring.alerts import raise_alert
from monitoring.models import Alert

pytestmark = pytest.mark.django_db


@pytest.fixture
def alert():
    return raise_alert(
        Alert.AlertType.RECONCILIATION,
        Alert.Severity.CRITICAL,
        "Checkout session not linked to order",
        "Session cs_1 was created but the order could not be updated.",
        "checkout",
        session_id="cs_1",
    )


class TestAlerts:
    def test_raise_alert_persists(self, alert):
        stored = Alert.objects.get(pk=alert.pk)
        assert stored.status == Alert.Status.ACTIVE
        assert stored.metadata == {"session_id": "cs_1"}
        assert stored.source == "checkout"

    def test_list_is_admin_only(self, customer_api, admin_api, alert):
        assert customer_api.get("/api/monitoring/alerts/").status_code == 403

        response = admin_api.get("/api/monitoring/alerts/", {"severity": "critical"})
        assert response.status_code == 200
        assert [item["id"] for item in response.data["results"]] == [alert.pk]

    def test_acknowledge_then_resolve(self, admin_api, alert):
        acknowledged = admin_api.post(f"/api/monitoring/alerts/{alert.pk}/acknowledge/")
        resolved = admin_api.post(f"/api/monitoring/alerts/{alert.pk}/resolve/")

        assert acknowledged.data["status"] == "acknowledged"
        assert acknowledged.data["acknowledged_at"] is not None
        assert resolved.data["status"] == "resolved"
        assert resolved.data["resolved_at"] is not None
        assert AuditLog.objects.filter(action="ALERT_UPDATE", resource_id=str(alert.pk)).count() == 2

    def test_resolved_alert_is_final(self, admin_api, alert):
        admin_api.post(f"/api/monitoring/alerts/{alert.pk}/resolve/")

        response = admin_api.post(f"/api/monitoring/alerts/{alert.pk}/acknowledge/")

        assert response.status_code == 409


class TestExceptionHandler:
    def render(self, exc):
        request = APIRequestFactory().get("/")
        return api_exception_handler(exc, {"view": None, "request": request})

    def test_plain_message(self):
        response = self.render(NotFoundError("Order not found."))

        assert response.status_code == 404
        assert response.data == {"error": "Order not found."}

    def test_field_errors(self):
        response = self.render(ValidationError({"shipping_address": ["Missing required field(s): city."]}))

        assert response.status_code == 400
        assert response.data["error"] == "Missing required field(s): city."
        assert response.data["fields"] == {"shipping_address": ["Missing required field(s): city."]}

    def test_conflict(self):
        response = self.render(ConflictError("This order has already been paid."))

        assert response.status_code == 409
        assert response.data == {"error": "This order has already been paid."}

    def test_server_errors_are_generic(self):
        response = self.render(CorrelationLostError("session cs_1 lost for order 42"))

        assert response.status_code == 503
        assert "cs_1" not in response.data["error"]
        assert response.data["code"] == "correlation_lost"

    def test_database_error_becomes_storage_error(self):
        response = self.render(DatabaseError("no such table: orders_order"))

        assert response.status_code == 503
        assert "orders_order" not in str(response.data)

    def test_unexpected_error(self):
        response = self.render(RuntimeError("boom"))

        assert response.status_code == 500
        assert "boom" not in str(response.data)

    def test_ratelimited_becomes_throttled(self):
        response = self.render(Ratelimited())

        assert response.status_code == 429

    def test_authentication_required(self):
        response = self.render(exceptions.NotAuthenticated())

        assert response.status_code == 401
        assert "error" in response.data
