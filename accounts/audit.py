"""
Helpers for writing ``AuditLog`` entries from services.
"""

import logging

from django.db import DatabaseError, transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


def log_action(ctx, action, resource_type, resource_id=None, status=AuditLog.Status.SUCCESS, metadata=None):
    """
    Create an audit log entry for an action performed by ``ctx``.

    ``ctx`` is an ``AuthContext`` or ``None`` for gateway/system events.
    A failing audit write is logged and does not abort the business
    operation that triggered it.
    """
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user_id=ctx.user_id if ctx else None,
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                ip_address=ctx.ip_address if ctx else None,
                user_agent=ctx.user_agent if ctx else "",
                request_path=ctx.request_path if ctx else "",
                request_method=ctx.request_method if ctx else "",
                status=status,
                metadata=metadata or {},
            )
    except DatabaseError:
        logger.exception("Could not write audit entry %s on %s %s", action, resource_type, resource_id)
        return None
