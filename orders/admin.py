"""
Django admin configuration for orders.

Orders are read-only here: status changes go through the API so they
pass the transition table and land in the audit log.
"""

from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ['product', 'quantity', 'unit_price', 'subtotal']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin interface for Order model."""
    list_display = ['id', 'user', 'total_amount', 'status', 'payment_status', 'payment_method', 'created_at']
    list_filter = ['status', 'payment_status', 'payment_method', 'created_at']
    search_fields = ['id', 'user__email', 'user__business_name', 'session_id', 'payment_intent_id']
    readonly_fields = [field.name for field in Order._meta.fields]
    inlines = [OrderItemInline]
    date_hierarchy = 'created_at'

    def has_add_permission(self, request):
        return False
