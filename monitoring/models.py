"""
Monitoring models.

An ``Alert`` is persisted whenever the payment flow hits a state that
needs an operator: a gateway session that could not be linked to its
order, a paid charge with no owner, an e-mail that never went out.
Alerts stay ``active`` until someone acknowledges or resolves them.
"""

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Alert(models.Model):
    """
    Operator alert.

    Alerts are generated by the payment and approval flows when a
    partial failure leaves data that must be reconciled by hand.
    """

    class AlertType(models.TextChoices):
        PAYMENT = "payment", _("Payment Alert")
        RECONCILIATION = "reconciliation", _("Reconciliation Alert")
        EMAIL = "email", _("E-mail Alert")
        APPLICATION = "application", _("Application Alert")

    class Severity(models.TextChoices):
        INFO = "info", _("Info")
        WARNING = "warning", _("Warning")
        CRITICAL = "critical", _("Critical")

    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        ACKNOWLEDGED = "acknowledged", _("Acknowledged")
        RESOLVED = "resolved", _("Resolved")

    alert_type = models.CharField(
        max_length=50,
        choices=AlertType.choices,
        db_index=True,
        help_text=_("Type of alert"),
    )
    severity = models.CharField(
        max_length=20,
        choices=Severity.choices,
        default=Severity.WARNING,
        db_index=True,
        help_text=_("Alert severity"),
    )
    title = models.CharField(max_length=200, help_text=_("Alert title"))
    message = models.TextField(help_text=_("Alert message"))
    source = models.CharField(
        max_length=100,
        help_text=_("Component that raised the alert (webhook, checkout, ...)"),
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True,
        help_text=_("Alert status"),
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text=_("Correlation data: order id, session id, amounts"),
    )

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    acknowledged_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "severity"], name="alert_status_severity_idx"),
            models.Index(fields=["alert_type", "created_at"], name="alert_type_created_idx"),
        ]
        verbose_name = _("Alert")
        verbose_name_plural = _("Alerts")

    def __str__(self):
        return f"{self.severity.upper()}: {self.title}"

    def acknowledge(self):
        self.status = self.Status.ACKNOWLEDGED
        self.acknowledged_at = timezone.now()
        self.save(update_fields=["status", "acknowledged_at"])

    def resolve(self):
        self.status = self.Status.RESOLVED
        self.resolved_at = timezone.now()
        self.save(update_fields=["status", "resolved_at"])
