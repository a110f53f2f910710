"""
Account URL declarations.

Keeping this list centralized makes it easy to audit which endpoints are public
(`AllowAny`) versus protected; the admin block is guarded by the
``admin_required`` decorator.
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from . import views

urlpatterns = [
    # Public endpoints used during onboarding and login
    path("auth/register/", views.register_user, name="auth-register"),
    path("auth/login/", views.login_user, name="auth-login"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="auth-token-refresh"),
    path("auth/me/", views.me, name="auth-me"),
    # Back-office account review
    path("admin/users/", views.list_users, name="admin-users"),
    path("admin/users/pending/", views.pending_users, name="admin-users-pending"),
    path("admin/users/<int:user_id>/", views.user_detail, name="admin-user-detail"),
    path("admin/users/<int:user_id>/approve/", views.approve_user, name="admin-user-approve"),
    path("admin/users/<int:user_id>/reject/", views.reject_user, name="admin-user-reject"),
    path("admin/users/<int:user_id>/request-docs/", views.request_documents, name="admin-user-request-docs"),
]
