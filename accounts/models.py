"""
Account models for the wholesale storefront.

Business customers register a ``User`` that starts in the ``pending``
approval state; only an administrator moves it on. ``AuditLog`` keeps a
permanent trail of security and back-office events (approval changes,
admin order overrides, webhook applications).
"""

from datetime import timedelta

from django.contrib.auth.models import AbstractUser, UserManager
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import RegexValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class AccountManager(UserManager):
    """User manager that falls back to the e-mail as ``username``."""

    def create_user(self, email=None, password=None, username=None, **extra_fields):
        username = username or self.normalize_email(email).lower()
        return super().create_user(username, email, password, **extra_fields)

    def create_superuser(self, email=None, password=None, username=None, **extra_fields):
        extra_fields.setdefault("role", User.Role.ADMIN)
        extra_fields.setdefault("approval_status", User.ApprovalStatus.APPROVED)
        username = username or self.normalize_email(email).lower()
        return super().create_superuser(username, email, password, **extra_fields)


class User(AbstractUser):
    """
    Business account.

    Uses email as the login identifier. Price visibility and checkout are
    gated on ``approval_status == approved``; ``rejection_notes`` is an
    administrator-only field and is never exposed on the customer's own
    profile.
    """

    class Role(models.TextChoices):
        USER = "user", _("User")
        ADMIN = "admin", _("Admin")

    class ApprovalStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        APPROVED = "approved", _("Approved")
        REJECTED = "rejected", _("Rejected")
        REQUEST_DOCS = "request_docs", _("Documents requested")

    username = models.CharField(
        max_length=150,
        unique=True,
        help_text="Defaults to the login e-mail.",
        validators=[
            RegexValidator(
                regex=r"^[\w.@+-]{1,150}$",
                message="Username may include letters, numbers and @/./+/-/_ characters.",
            )
        ],
    )
    email = models.EmailField(unique=True)

    # Business identity
    business_name = models.CharField(max_length=200)
    cif = models.CharField(max_length=32, blank=True, help_text="Spanish company tax code (CIF).")
    tax_id = models.CharField(max_length=32, blank=True)

    # Contact
    phone = models.CharField(
        max_length=20,
        blank=True,
        validators=[
            RegexValidator(
                regex=r"^\+?[0-9 ]{6,20}$",
                message="Enter a valid phone number (digits, spaces and an optional leading +).",
            )
        ],
    )
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, blank=True)

    # Back-office
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.USER, db_index=True)
    approval_status = models.CharField(
        max_length=20,
        choices=ApprovalStatus.choices,
        default=ApprovalStatus.PENDING,
        db_index=True,
    )
    rejection_notes = models.TextField(blank=True)

    # Document request bookkeeping: intent is recorded before the e-mail
    # goes out, ``docs_notified`` flips once it has been delivered.
    docs_requested_at = models.DateTimeField(null=True, blank=True)
    docs_notified = models.BooleanField(default=True)
    docs_message = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    failed_login_attempts = models.PositiveIntegerField(default=0)
    last_failed_login = models.DateTimeField(null=True, blank=True)
    account_locked_until = models.DateTimeField(null=True, blank=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["business_name"]

    objects = AccountManager()

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("email",), name="accounts_user_email_idx"),
            models.Index(fields=("approval_status", "created_at"), name="accounts_user_approval_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.email} ({self.business_name or self.username})"

    @property
    def is_admin(self) -> bool:
        return self.is_superuser or self.role == self.Role.ADMIN

    @property
    def is_approved(self) -> bool:
        return self.approval_status == self.ApprovalStatus.APPROVED

    @property
    def is_account_locked(self) -> bool:
        return bool(self.account_locked_until and timezone.now() < self.account_locked_until)

    def reset_failed_logins(self) -> None:
        self.failed_login_attempts = 0
        self.last_failed_login = None
        self.account_locked_until = None
        self.save(update_fields=["failed_login_attempts", "last_failed_login", "account_locked_until"])

    def lock_account(self, minutes: int = 15) -> None:
        self.account_locked_until = timezone.now() + timedelta(minutes=minutes)
        self.save(update_fields=["account_locked_until", "failed_login_attempts", "last_failed_login"])


class AuditLog(models.Model):
    """
    Audit trail for security and back-office events.

    Records:
    - Login attempts
    - Approval status changes
    - Admin overrides of order status (forced transitions included)
    - Customer order deletions (with a snapshot of the deleted row)
    - Payment webhook applications

    Audit rows are never deleted.
    """

    class Status(models.TextChoices):
        SUCCESS = "SUCCESS", "Success"
        FAILURE = "FAILURE", "Failure"
        BLOCKED = "BLOCKED", "Blocked"

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
        help_text="User who performed the action (null for gateway and system events)",
    )
    action = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Action type: LOGIN, APPROVAL_CHANGE, ORDER_STATUS_OVERRIDE, ORDER_DELETE, ...",
    )
    resource_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Resource type: USER, PRODUCT, ORDER, PAYMENT",
    )
    resource_id = models.CharField(max_length=100, null=True, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    request_path = models.CharField(max_length=500, blank=True)
    request_method = models.CharField(max_length=10, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.SUCCESS,
        db_index=True,
    )
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["user", "timestamp"], name="audit_user_time_idx"),
            models.Index(fields=["action", "status", "timestamp"], name="audit_action_status_idx"),
            models.Index(fields=["resource_type", "resource_id"], name="audit_resource_idx"),
        ]
        verbose_name = "Audit Log"
        verbose_name_plural = "Audit Logs"

    def __str__(self):
        user_str = self.user.email if self.user else "system"
        return f"{self.action} on {self.resource_type} by {user_str} at {self.timestamp}"
