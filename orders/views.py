"""
Order views for the wholesale API.

- Customers see and act on their own orders only (others look missing)
- Placing an order and opening a checkout session need an approved account
- Order creation and checkout are rate limited
- The payment webhook is unauthenticated; its signature is the credential
- Back-office endpoints are admin only and audit logged by the services
"""

from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from accounts.views import admin_required
from baklava_wholesale.context import AuthContext

from . import checkout, polling, services, webhooks
from .serializers import (
    AdminOrderSerializer,
    AdminOrderUpdateSerializer,
    CheckoutSessionSerializer,
    ConfirmPaymentSerializer,
    OrderCreateSerializer,
    OrderSerializer,
)


class OrderViewSet(viewsets.GenericViewSet):
    """
    Customer order endpoints.

    Every action builds the caller's ``AuthContext`` and hands it to the
    service layer, which enforces ownership and approval.
    """

    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = '[0-9a-fA-F-]{36}'

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['lang'] = self.request.query_params.get('lang', 'en')
        return context

    def list(self, request):
        ctx = AuthContext.from_request(request)
        queryset = services.list_orders(ctx)
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request, pk=None):
        ctx = AuthContext.from_request(request)
        order = services.get_order(ctx, pk)
        return Response(self.get_serializer(order).data)

    @method_decorator(ratelimit(key='user', rate='10/m', method='POST'))
    def create(self, request):
        """
        Place an order.

        Totals are computed server-side from catalog prices.
        """
        ctx = AuthContext.from_request(request)
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order, totals = services.create_order(ctx, **serializer.validated_data)
        data = self.get_serializer(order).data
        data['totals'] = totals.as_dict()
        return Response(data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='status')
    def payment_state(self, request, pk=None):
        """State read used by the confirmation page while it polls."""
        ctx = AuthContext.from_request(request)
        return Response(polling.order_state(ctx, pk))

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        ctx = AuthContext.from_request(request)
        result = services.cancel_order(ctx, pk)
        return Response({'ok': True, **result})

    @action(detail=True, methods=['post'], url_path='checkout-session')
    @method_decorator(ratelimit(key='user', rate='10/m', method='POST'))
    def checkout_session(self, request, pk=None):
        ctx = AuthContext.from_request(request)
        serializer = CheckoutSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = checkout.start_checkout(ctx, pk, serializer.validated_data.get('items'))
        return Response(result, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='confirm-payment')
    def confirm_payment(self, request, pk=None):
        ctx = AuthContext.from_request(request)
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = checkout.confirm_payment_intent(ctx, pk, serializer.validated_data['payment_intent_id'])
        return Response(result)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def payment_webhook(request):
    """
    Gateway event receiver.

    Authentication is the ``Stripe-Signature`` header, checked before the
    body is parsed.
    """
    result = webhooks.handle_event(request.body, request.META.get('HTTP_STRIPE_SIGNATURE', ''))
    return Response(result.as_dict(), status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@admin_required
def admin_orders(request, ctx):
    params = request.query_params
    result = services.admin_list_orders(
        ctx,
        status=params.get('status'),
        q=params.get('q', ''),
        date_from=params.get('date_from') or params.get('dateFrom'),
        date_to=params.get('date_to') or params.get('dateTo'),
        page=params.get('page'),
        page_size=params.get('page_size') or params.get('pageSize'),
    )
    return Response({
        'results': AdminOrderSerializer(result.pop('orders'), many=True).data,
        **result,
    })


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
@admin_required
def admin_order_detail(request, order_id, ctx):
    if request.method == 'GET':
        order = services.get_order(ctx, order_id)
        return Response(AdminOrderSerializer(order).data)

    serializer = AdminOrderUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    order = services.admin_update_order(ctx, order_id, **serializer.validated_data)
    return Response(AdminOrderSerializer(order).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@admin_required
def admin_dashboard(request, ctx):
    return Response(services.dashboard_stats(ctx))
