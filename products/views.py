"""
Product ViewSet for the wholesale catalog API.

- Anyone may browse active products
- ``price`` is only serialized for approved buyers and admins
- Only admins create, update or deactivate products
- Write operations are rate limited and audit logged
"""

from django.utils.decorators import method_decorator
from django_filters.rest_framework import DjangoFilterBackend
from django_ratelimit.decorators import ratelimit
from rest_framework import status, viewsets
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from accounts.audit import log_action
from baklava_wholesale.context import AuthContext

from .models import DEFAULT_LANGUAGE, Product
from .serializers import PricedProductCatalogSerializer, ProductCatalogSerializer, ProductSerializer


class ProductViewSet(viewsets.ModelViewSet):
    """
    Catalog endpoints.

    Reads are public; the serializer is picked per caller so that an
    unapproved account never receives a price field.
    """

    permission_classes = [AllowAny]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['category']

    def _context(self):
        if not hasattr(self, '_auth_context'):
            user = self.request.user
            self._auth_context = AuthContext.from_request(self.request) if user.is_authenticated else None
        return self._auth_context

    def get_queryset(self):
        ctx = self._context()
        if ctx and ctx.is_admin:
            return Product.objects.all().order_by('display_order', 'id')
        return Product.objects.filter(is_active=True).order_by('display_order', 'id')

    def get_permissions(self):
        if self.action in ['create', 'update', 'partial_update', 'destroy']:
            return [IsAuthenticated()]
        return super().get_permissions()

    def get_serializer_class(self):
        if self.action in ['create', 'update', 'partial_update']:
            return ProductSerializer
        ctx = self._context()
        if ctx and ctx.can_see_prices:
            return PricedProductCatalogSerializer
        return ProductCatalogSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['lang'] = self.request.query_params.get('lang', DEFAULT_LANGUAGE)
        return context

    @method_decorator(ratelimit(key='user', rate='30/m', method='POST'))
    def create(self, request, *args, **kwargs):
        ctx = AuthContext.from_request(request)
        ctx.require_admin()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = serializer.save()
        log_action(ctx, 'CREATE', 'PRODUCT', product.pk)
        return Response(serializer.data, status=status.HTTP_201_CREATED)

    @method_decorator(ratelimit(key='user', rate='60/m', method=['PUT', 'PATCH']))
    def update(self, request, *args, **kwargs):
        ctx = AuthContext.from_request(request)
        ctx.require_admin()
        partial = kwargs.pop('partial', False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        log_action(ctx, 'UPDATE', 'PRODUCT', instance.pk, metadata={'fields': sorted(serializer.validated_data)})
        return Response(serializer.data)

    def destroy(self, request, *args, **kwargs):
        """
        Deactivate a product.

        Order lines keep a protected reference to their product, so the
        row is hidden (is_active=False) rather than deleted.
        """
        ctx = AuthContext.from_request(request)
        ctx.require_admin()
        instance = self.get_object()
        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])
        log_action(ctx, 'DEACTIVATE', 'PRODUCT', instance.pk)
        return Response(
            {'detail': 'Product deactivated successfully.'},
            status=status.HTTP_200_OK
        )
