from django.conf import settings
from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed

from .models import User

PROFILE_FIELDS = [
    "id",
    "email",
    "business_name",
    "cif",
    "tax_id",
    "phone",
    "address",
    "city",
    "postal_code",
    "country",
    "role",
    "approval_status",
    "created_at",
]


class UserSerializer(serializers.ModelSerializer):
    """Profile as seen by its owner. Never carries ``rejection_notes``."""

    class Meta:
        model = User
        fields = PROFILE_FIELDS
        read_only_fields = ("id", "email", "role", "approval_status", "created_at")


class AdminUserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = PROFILE_FIELDS + [
            "rejection_notes",
            "docs_requested_at",
            "docs_notified",
            "docs_message",
            "is_active",
            "updated_at",
        ]
        read_only_fields = (
            "id",
            "email",
            "role",
            "approval_status",
            "rejection_notes",
            "docs_requested_at",
            "docs_notified",
            "docs_message",
            "created_at",
            "updated_at",
        )


class ApprovalStatusSerializer(serializers.Serializer):
    approval_status = serializers.ChoiceField(choices=User.ApprovalStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class NotesSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class DocumentRequestSerializer(serializers.Serializer):
    message = serializers.CharField(required=False, allow_blank=True, default="", max_length=2000)


class UserRegistrationSerializer(serializers.ModelSerializer):
    password = serializers.CharField(
        write_only=True,
        style={"input_type": "password"},
        help_text="Strong password required; will be validated against Django's password validators.",
    )
    password_confirm = serializers.CharField(
        write_only=True,
        style={"input_type": "password"},
    )

    class Meta:
        model = User
        fields = [
            "email",
            "business_name",
            "cif",
            "tax_id",
            "phone",
            "address",
            "city",
            "postal_code",
            "country",
            "password",
            "password_confirm",
        ]

    def validate_email(self, value: str) -> str:
        value = value.lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(_("An account with this e-mail already exists."))
        return value

    def validate(self, attrs):
        password = attrs.get("password")
        password_confirm = attrs.pop("password_confirm", None)
        if password != password_confirm:
            raise serializers.ValidationError({"password_confirm": _("Passwords do not match.")})

        validate_password(password)
        return attrs

    def create(self, validated_data):
        password = validated_data.pop("password")
        # Self-registered accounts always start unapproved with the base role.
        return User.objects.create_user(
            password=password,
            role=User.Role.USER,
            approval_status=User.ApprovalStatus.PENDING,
            **validated_data,
        )


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, style={"input_type": "password"})

    lockout_threshold = getattr(settings, "AUTH_LOCKOUT_THRESHOLD", 5)
    lockout_minutes = getattr(settings, "AUTH_LOCKOUT_MINUTES", 15)

    def validate(self, attrs):
        email = attrs.get("email").lower()
        password = attrs.get("password")
        request = self.context.get("request")

        try:
            user = User.objects.get(email__iexact=email)
        except User.DoesNotExist:
            raise AuthenticationFailed(_("Invalid credentials."), code="authorization")

        if user.is_account_locked:
            locked_until = timezone.localtime(user.account_locked_until)
            raise AuthenticationFailed(
                _("Account locked due to repeated failures. Try again at %(datetime)s.") % {"datetime": locked_until},
                code="account_locked",
            )

        authenticated_user = authenticate(request, username=email, password=password)
        if not authenticated_user:
            user.failed_login_attempts += 1
            user.last_failed_login = timezone.now()

            if user.failed_login_attempts >= self.lockout_threshold:
                user.lock_account(self.lockout_minutes)
            else:
                user.save(update_fields=["failed_login_attempts", "last_failed_login"])

            raise AuthenticationFailed(_("Invalid credentials."), code="authorization")

        if user.failed_login_attempts:
            user.reset_failed_logins()

        attrs["user"] = authenticated_user
        return attrs
