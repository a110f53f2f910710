import logging

from django.db import DatabaseError, transaction

from .models import Alert

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Alert.Severity.INFO: logging.INFO,
    Alert.Severity.WARNING: logging.WARNING,
    Alert.Severity.CRITICAL: logging.CRITICAL,
}


def raise_alert(alert_type, severity, title, message, source, **metadata):
    """
    Log and persist an operator alert.

    The log line is always written, so an alert survives even when the
    database is the thing that failed.
    """
    logger.log(
        _LOG_LEVELS.get(severity, logging.WARNING),
        "[%s] %s: %s %s",
        source,
        title,
        message,
        metadata,
    )
    try:
        with transaction.atomic():
            return Alert.objects.create(
                alert_type=alert_type,
                severity=severity,
                title=title[:200],
                message=message,
                source=source,
                metadata=metadata,
            )
    except DatabaseError:
        logger.exception("Could not persist alert %r", title)
        return None
