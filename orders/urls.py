"""
Order routes that are not part of the customer ViewSet.
"""

from django.urls import path

from . import views

urlpatterns = [
    path("payments/webhook/", views.payment_webhook, name="payment-webhook"),
    path("admin/orders/", views.admin_orders, name="admin-orders"),
    path("admin/orders/<uuid:order_id>/", views.admin_order_detail, name="admin-order-detail"),
    path("admin/dashboard/", views.admin_dashboard, name="admin-dashboard"),
]
