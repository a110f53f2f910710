"""
Django admin configuration for account models.
"""

from django.contrib import admin

from .models import AuditLog, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    """Admin interface for business accounts."""
    list_display = ['email', 'business_name', 'role', 'approval_status', 'docs_notified', 'created_at']
    list_filter = ['approval_status', 'role', 'docs_notified', 'is_active']
    search_fields = ['email', 'business_name', 'cif', 'tax_id']
    # Approval changes go through the API so they are validated and audited.
    readonly_fields = ['approval_status', 'rejection_notes', 'docs_requested_at', 'docs_notified',
                       'created_at', 'updated_at', 'last_login', 'date_joined']
    exclude = ['password', 'groups', 'user_permissions']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Admin interface for AuditLog model."""
    list_display = ['action', 'resource_type', 'resource_id', 'user', 'status', 'timestamp']
    list_filter = ['action', 'resource_type', 'status', 'timestamp']
    search_fields = ['user__email', 'ip_address', 'action', 'resource_id']
    readonly_fields = ['timestamp', 'user', 'action', 'resource_type', 'resource_id',
                       'ip_address', 'user_agent', 'request_path', 'request_method',
                       'status', 'metadata']
    date_hierarchy = 'timestamp'

    def has_add_permission(self, request):
        """Prevent manual creation of audit logs."""
        return False
