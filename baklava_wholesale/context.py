"""
Per-request caller identity.

An ``AuthContext`` is built once at the request boundary and threaded
through every service call, so business logic never re-reads the session
or the user row to find out who is calling.
"""

from dataclasses import dataclass
from typing import Optional

from .exceptions import AuthenticationRequired, AuthorizationError

ROLE_ADMIN = "admin"
ROLE_USER = "user"
APPROVED = "approved"


def request_meta(request) -> dict:
    """Client details recorded alongside audit entries."""
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        ip_address = x_forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.META.get("REMOTE_ADDR")

    return {
        "ip_address": ip_address,
        "user_agent": request.META.get("HTTP_USER_AGENT", ""),
        "request_path": request.path,
        "request_method": request.method,
    }


@dataclass(frozen=True)
class AuthContext:
    user_id: Optional[int]
    role: str
    approval_status: str
    email: str = ""
    ip_address: Optional[str] = None
    user_agent: str = ""
    request_path: str = ""
    request_method: str = ""

    @classmethod
    def for_user(cls, user, **meta) -> "AuthContext":
        role = ROLE_ADMIN if (user.is_superuser or user.role == ROLE_ADMIN) else ROLE_USER
        return cls(
            user_id=user.pk,
            role=role,
            approval_status=user.approval_status,
            email=user.email,
            **meta,
        )

    @classmethod
    def system(cls) -> "AuthContext":
        """Context for management commands and other non-request callers."""
        return cls(user_id=None, role=ROLE_ADMIN, approval_status=APPROVED, email="system")

    @classmethod
    def from_request(cls, request) -> "AuthContext":
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            raise AuthenticationRequired()
        return cls.for_user(user, **request_meta(request))

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_approved(self) -> bool:
        return self.approval_status == APPROVED

    @property
    def can_see_prices(self) -> bool:
        return self.is_admin or self.is_approved

    def require_admin(self) -> None:
        if not self.is_admin:
            raise AuthorizationError("Only administrators can perform this action.")

    def require_approved(self) -> None:
        if not (self.is_admin or self.is_approved):
            raise AuthorizationError("Your business account has not been approved yet.")
