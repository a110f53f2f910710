"""
Business account approval workflow.

Every status change made by an administrator goes through
``ALLOWED_TRANSITIONS``; anything outside the table is a ``ConflictError``.
A document request is recorded before its e-mail is sent so a delivery
failure leaves a retryable row (``docs_notified=False``) behind instead
of a silent gap.
"""

import logging

from django.db import transaction
from django.utils import timezone

from baklava_wholesale.exceptions import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from monitoring.alerts import raise_alert
from monitoring.models import Alert

from .audit import log_action
from .emails import DEFAULT_DOCUMENT_MESSAGE, send_document_request
from .models import AuditLog, User

logger = logging.getLogger(__name__)

Status = User.ApprovalStatus

ALLOWED_TRANSITIONS = {
    Status.PENDING: {Status.APPROVED, Status.REJECTED, Status.REQUEST_DOCS},
    Status.REQUEST_DOCS: {Status.PENDING, Status.APPROVED, Status.REJECTED, Status.REQUEST_DOCS},
    Status.APPROVED: {Status.REJECTED, Status.PENDING},
    Status.REJECTED: {Status.APPROVED, Status.PENDING, Status.REQUEST_DOCS},
}


def can_transition(current, target):
    return target in ALLOWED_TRANSITIONS.get(current, set())


def _parse_status(value):
    try:
        return Status(value)
    except ValueError:
        raise ValidationError({"approval_status": [f"Unknown approval status '{value}'."]})


def _locked_user(user_id):
    try:
        return User.objects.select_for_update().get(pk=user_id)
    except (User.DoesNotExist, ValueError):
        raise NotFoundError("User not found.")


def _transition(ctx, user_id, target, notes=""):
    ctx.require_admin()
    with transaction.atomic():
        user = _locked_user(user_id)
        current = Status(user.approval_status)
        allowed = can_transition(current, target)
        if allowed:
            _apply(ctx, user, current, target, notes)

    if not allowed:
        # Logged outside the transaction.
        log_action(
            ctx,
            "APPROVAL_CHANGE",
            "USER",
            user.pk,
            status=AuditLog.Status.BLOCKED,
            metadata={"from": current, "to": target},
        )
        raise ConflictError(f"Cannot move an account from '{current}' to '{target}'.")

    logger.info("Account %s moved from %s to %s by %s", user.email, current, target, ctx.email)
    return user


def _apply(ctx, user, current, target, notes):
    user.approval_status = target
    if target == Status.REJECTED:
        user.rejection_notes = notes or ""
    elif current == Status.REJECTED:
        user.rejection_notes = ""
    user.save(update_fields=["approval_status", "rejection_notes", "updated_at"])

    log_action(
        ctx,
        "APPROVAL_CHANGE",
        "USER",
        user.pk,
        metadata={"from": current, "to": target, "notes": notes},
    )


def approve(ctx, user_id):
    return _transition(ctx, user_id, Status.APPROVED)


def reject(ctx, user_id, notes=""):
    return _transition(ctx, user_id, Status.REJECTED, notes=notes)


def set_status(ctx, user_id, status, notes=""):
    """Move an account to ``status``; ``request_docs`` also sends the e-mail."""
    target = _parse_status(status)
    if target == Status.REQUEST_DOCS:
        return request_documents(ctx, user_id, notes)
    return _transition(ctx, user_id, target, notes=notes)


def _deliver(user):
    """Send the pending document request of ``user`` and mark it delivered."""
    send_document_request(user, user.docs_message)
    User.objects.filter(pk=user.pk, docs_notified=False).update(docs_notified=True)
    user.docs_notified = True


def request_documents(ctx, user_id, message=""):
    """
    Ask a customer for business documents.

    The request is committed first (``request_docs``, not yet notified),
    then the e-mail is sent and the row marked as notified. A failed
    send raises ``ExternalServiceError`` and leaves the request for
    ``retry_document_requests``.
    """
    ctx.require_admin()
    message = message or DEFAULT_DOCUMENT_MESSAGE
    with transaction.atomic():
        user = _locked_user(user_id)
        current = Status(user.approval_status)
        if not can_transition(current, Status.REQUEST_DOCS):
            raise ConflictError(f"Cannot request documents from an account in '{current}'.")

        user.approval_status = Status.REQUEST_DOCS
        if current == Status.REJECTED:
            user.rejection_notes = ""
        user.docs_requested_at = timezone.now()
        user.docs_notified = False
        user.docs_message = message
        user.save(
            update_fields=[
                "approval_status",
                "rejection_notes",
                "docs_requested_at",
                "docs_notified",
                "docs_message",
                "updated_at",
            ]
        )
        log_action(
            ctx,
            "APPROVAL_CHANGE",
            "USER",
            user.pk,
            metadata={"from": current, "to": Status.REQUEST_DOCS, "message": message},
        )

    try:
        _deliver(user)
    except ExternalServiceError:
        raise_alert(
            Alert.AlertType.EMAIL,
            Alert.Severity.WARNING,
            "Document request e-mail not delivered",
            f"Document request for {user.email} is recorded but the e-mail failed.",
            "approval",
            user_id=user.pk,
        )
        raise

    return user


def retry_document_requests():
    """
    Re-send every recorded but undelivered document request.

    Returns ``(sent, failed)`` counts.
    """
    sent = failed = 0
    pending = User.objects.filter(approval_status=Status.REQUEST_DOCS, docs_notified=False)
    for user in pending.order_by("docs_requested_at"):
        try:
            _deliver(user)
        except ExternalServiceError:
            failed += 1
            continue
        sent += 1
    logger.info("Document request retry: %s sent, %s failed", sent, failed)
    return sent, failed
