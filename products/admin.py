from django.contrib import admin

from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin interface for catalog products."""
    list_display = ['__str__', 'category', 'price', 'unit', 'min_order_quantity', 'display_order', 'is_active']
    list_filter = ['is_active', 'category', 'unit']
    list_editable = ['display_order', 'is_active']
    ordering = ['display_order', 'id']
