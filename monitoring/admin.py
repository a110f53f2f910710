"""
Django admin configuration for monitoring models.
"""

from django.contrib import admin
from django.utils import timezone

from .models import Alert


@admin.register(Alert)
class AlertAdmin(admin.ModelAdmin):
    """Admin interface for Alert."""
    list_display = ['title', 'alert_type', 'severity', 'status', 'source', 'created_at']
    list_filter = ['alert_type', 'severity', 'status', 'created_at']
    search_fields = ['title', 'message', 'source']
    readonly_fields = ['created_at', 'acknowledged_at', 'resolved_at']
    date_hierarchy = 'created_at'

    actions = ['mark_acknowledged', 'mark_resolved']

    @admin.action(description="Mark selected alerts as acknowledged")
    def mark_acknowledged(self, request, queryset):
        queryset.filter(status=Alert.Status.ACTIVE).update(
            status=Alert.Status.ACKNOWLEDGED, acknowledged_at=timezone.now()
        )

    @admin.action(description="Mark selected alerts as resolved")
    def mark_resolved(self, request, queryset):
        queryset.exclude(status=Alert.Status.RESOLVED).update(
            status=Alert.Status.RESOLVED, resolved_at=timezone.now()
        )
