"""
Error taxonomy and API error rendering for the wholesale storefront.

Services raise the exceptions defined here (or DRF's own
``ValidationError``); the project exception handler turns every one of
them into a ``{"error": "..."}`` JSON body. Server-side failures (5xx)
never leak internal detail to the client; the detail goes to the log.
"""

import logging

from django.db import DatabaseError
from django.utils.translation import gettext_lazy as _
from django_ratelimit.exceptions import Ratelimited
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

# Re-exported so services import the whole taxonomy from one place.
ValidationError = exceptions.ValidationError


class AuthenticationRequired(exceptions.NotAuthenticated):
    default_detail = _("Authentication credentials were not provided.")


class AuthorizationError(exceptions.PermissionDenied):
    """Caller is not the resource owner or lacks the required role."""

    default_detail = _("You do not have permission to perform this action.")


class NotFoundError(exceptions.NotFound):
    default_detail = _("Not found.")


class ConflictError(exceptions.APIException):
    """The operation would violate a state invariant."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = _("The resource is not in a state that allows this operation.")
    default_code = "conflict"


class StorageError(exceptions.APIException):
    """The data store rejected an operation."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = _("The data store rejected the operation.")
    default_code = "storage_error"


class ExternalServiceError(exceptions.APIException):
    """The payment gateway or e-mail provider call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = _("An external service call failed.")
    default_code = "external_service_error"


class CorrelationLostError(StorageError):
    """
    A gateway session exists but could not be attached to its order.

    The charge may still succeed; operators must reconcile by hand.
    """

    default_detail = _("Payment session could not be linked to the order.")
    default_code = "correlation_lost"


GENERIC_SERVER_ERROR = _("Something went wrong, please try again.")


def _flatten(detail):
    """Return the first human readable message found in a DRF error detail."""
    if isinstance(detail, dict):
        for value in detail.values():
            return _flatten(value)
        return ""
    if isinstance(detail, (list, tuple)):
        return _flatten(detail[0]) if detail else ""
    return str(detail)


def api_exception_handler(exc, context):
    """
    Render every API error as ``{"error": message}``.

    Field-level validation errors also carry the per-field detail under
    ``"fields"`` so clients can put messages next to their controls.
    """
    if isinstance(exc, Ratelimited):
        exc = exceptions.Throttled()
    elif isinstance(exc, DatabaseError):
        logger.exception("Unhandled database error in %s", context.get("view"))
        exc = StorageError()

    response = exception_handler(exc, context)
    if response is None:
        logger.exception("Unhandled error in %s", context.get("view"), exc_info=exc)
        return Response(
            {"error": str(GENERIC_SERVER_ERROR)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if response.status_code >= 500:
        logger.error(
            "Server-side failure (%s): %s", type(exc).__name__, getattr(exc, "detail", exc)
        )
        body = {"error": str(GENERIC_SERVER_ERROR), "code": getattr(exc, "default_code", "error")}
    else:
        detail = getattr(exc, "detail", response.data)
        body = {"error": _flatten(detail)}
        if isinstance(detail, dict):
            body["fields"] = response.data

    response.data = body
    return response
