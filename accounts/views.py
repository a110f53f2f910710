from functools import wraps

from django.db import transaction
from django.db.models import ProtectedError, Q
from django.utils.translation import gettext_lazy as _
from django_ratelimit.decorators import ratelimit
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken

from baklava_wholesale.context import AuthContext, request_meta
from baklava_wholesale.exceptions import ConflictError, NotFoundError

from . import approval
from .audit import log_action
from .models import AuditLog, User
from .serializers import (
    AdminUserSerializer,
    ApprovalStatusSerializer,
    DocumentRequestSerializer,
    LoginSerializer,
    NotesSerializer,
    UserRegistrationSerializer,
    UserSerializer,
)


def admin_required(func):
    """
    Build the caller's ``AuthContext`` and reject non-administrators.

    The context is passed to the view as ``ctx``.
    """

    @wraps(func)
    def wrapper(request, *args, **kwargs):
        ctx = AuthContext.from_request(request)
        ctx.require_admin()
        return func(request, *args, ctx=ctx, **kwargs)

    return wrapper


def _issue_tokens_for_user(user: User) -> dict:
    refresh = RefreshToken.for_user(user)
    return {
        "refresh": str(refresh),
        "access": str(refresh.access_token),
    }


def _get_user(user_id):
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise NotFoundError(_("User not found."))


@api_view(["POST"])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate="5/m", method="POST")
def register_user(request):
    serializer = UserRegistrationSerializer(data=request.data, context={"request": request})
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    log_action(AuthContext.for_user(user), "REGISTER", "USER", user.pk)
    data = {
        "message": _("Registration successful. Your account is pending approval."),
        "user": UserSerializer(user).data,
        "tokens": _issue_tokens_for_user(user),
    }
    return Response(data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate="10/m", method="POST")
def login_user(request):
    serializer = LoginSerializer(data=request.data, context={"request": request})
    try:
        serializer.is_valid(raise_exception=True)
    except AuthenticationFailed:
        email = str(request.data.get("email", "")).lower()
        log_action(
            None,
            "LOGIN",
            "USER",
            status=AuditLog.Status.FAILURE,
            metadata={"email": email, "ip": request.META.get("REMOTE_ADDR")},
        )
        raise

    user = serializer.validated_data["user"]
    log_action(AuthContext.for_user(user, **request_meta(request)), "LOGIN", "USER", user.pk)
    data = {
        "message": _("Login successful."),
        "user": UserSerializer(user).data,
        "tokens": _issue_tokens_for_user(user),
    }
    return Response(data, status=status.HTTP_200_OK)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def me(request):
    serializer = UserSerializer(request.user)
    return Response(serializer.data, status=status.HTTP_200_OK)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@admin_required
def list_users(request, ctx):
    queryset = User.objects.all().order_by("-created_at")

    approval_status = request.query_params.get("approval_status")
    if approval_status:
        queryset = queryset.filter(approval_status=approval_status)

    q = request.query_params.get("q", "").strip()
    if q:
        queryset = queryset.filter(
            Q(email__icontains=q) | Q(business_name__icontains=q) | Q(cif__icontains=q)
        )

    paginator = PageNumberPagination()
    page = paginator.paginate_queryset(queryset, request)
    serializer = AdminUserSerializer(page, many=True)
    return paginator.get_paginated_response(serializer.data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
@admin_required
def pending_users(request, ctx):
    queryset = User.objects.filter(
        approval_status__in=[User.ApprovalStatus.PENDING, User.ApprovalStatus.REQUEST_DOCS]
    ).order_by("created_at")
    serializer = AdminUserSerializer(queryset, many=True)
    return Response(serializer.data, status=status.HTTP_200_OK)


@api_view(["GET", "PATCH", "DELETE"])
@permission_classes([IsAuthenticated])
@admin_required
def user_detail(request, user_id, ctx):
    user = _get_user(user_id)
    if request.method == "GET":
        return Response(AdminUserSerializer(user).data, status=status.HTTP_200_OK)
    if request.method == "DELETE":
        return _delete_user(ctx, user)

    data = dict(request.data.items())
    target_status = data.pop("approval_status", None)
    notes = data.pop("notes", None)

    # Validate everything before writing anything.
    serializer = None
    if data:
        serializer = AdminUserSerializer(user, data=data, partial=True)
        serializer.is_valid(raise_exception=True)

    if target_status is not None:
        status_serializer = ApprovalStatusSerializer(
            data={"approval_status": target_status, "notes": notes or ""}
        )
        status_serializer.is_valid(raise_exception=True)
        target_status = status_serializer.validated_data["approval_status"]
        # Resending the current status is a no-op.
        if target_status != user.approval_status:
            approval.set_status(ctx, user.pk, target_status, status_serializer.validated_data["notes"])
            user.refresh_from_db()

    if serializer is not None:
        serializer.instance = user
        serializer.save()
        log_action(ctx, "USER_UPDATE", "USER", user.pk, metadata={"fields": sorted(serializer.validated_data)})

    user.refresh_from_db()
    return Response(AdminUserSerializer(user).data, status=status.HTTP_200_OK)


def _delete_user(ctx, user):
    """
    Delete an account, or deactivate it when it still owns orders.

    Orders keep a protected reference to their buyer, so an account with
    order history is switched off instead of removed.
    """
    if user.pk == ctx.user_id:
        raise ConflictError(_("Administrators cannot delete their own account."))

    snapshot = {"email": user.email, "business_name": user.business_name, "role": user.role}
    if user.orders.exists():
        user.is_active = False
        user.save(update_fields=["is_active", "updated_at"])
        log_action(ctx, "USER_DEACTIVATE", "USER", user.pk, metadata=snapshot)
        return Response(
            {"success": True, "deactivated": True, "user": AdminUserSerializer(user).data},
            status=status.HTTP_200_OK,
        )

    user_pk = user.pk
    try:
        with transaction.atomic():
            user.delete()
    except ProtectedError:
        raise ConflictError(_("This account is still referenced and cannot be deleted."))
    log_action(ctx, "USER_DELETE", "USER", user_pk, metadata=snapshot)
    return Response({"success": True, "deactivated": False}, status=status.HTTP_200_OK)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@admin_required
def approve_user(request, user_id, ctx):
    user = approval.approve(ctx, user_id)
    return Response(
        {"message": _("User approved successfully."), "user": AdminUserSerializer(user).data},
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@admin_required
def reject_user(request, user_id, ctx):
    serializer = NotesSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = approval.reject(ctx, user_id, serializer.validated_data["notes"])
    return Response(
        {"message": _("User rejected successfully."), "user": AdminUserSerializer(user).data},
        status=status.HTTP_200_OK,
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@admin_required
def request_documents(request, user_id, ctx):
    serializer = DocumentRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = approval.request_documents(ctx, user_id, serializer.validated_data["message"])
    return Response(
        {"success": True, "contact": {"email": user.email}, "user": AdminUserSerializer(user).data},
        status=status.HTTP_200_OK,
    )
