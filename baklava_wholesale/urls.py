"""
URL configuration for baklava_wholesale.

This module defines URL patterns for the wholesale API including:
- Account endpoints (registration, JWT login, back-office review)
- Product and Order ViewSet routes
- Payment webhook and back-office order endpoints
- Monitoring alerts
- Admin interface
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from monitoring.views import AlertViewSet
from orders.views import OrderViewSet
from products.views import ProductViewSet

# Create router for ViewSets
router = DefaultRouter()
router.register(r'products', ProductViewSet, basename='product')
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'monitoring/alerts', AlertViewSet, basename='alert')

urlpatterns = [
    # Admin interface
    path('admin/', admin.site.urls),

    # API routes
    path('api/', include(router.urls)),
    path('api/', include('accounts.urls')),
    path('api/', include('orders.urls')),
]
