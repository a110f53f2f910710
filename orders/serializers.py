"""
Order serializers for the wholesale API.

Input serializers only shape and type-check the request; business rules
(catalog prices, minimum quantities, transitions) live in the services.
"""

from rest_framework import serializers

from products.models import localize

from .models import Order, OrderItem
from .state import OrderStatus, PaymentMethod, PaymentStatus


class OrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = [
            'id',
            'product',
            'product_name',
            'quantity',
            'unit_price',
            'subtotal',
        ]
        read_only_fields = fields

    def get_product_name(self, obj):
        return localize(obj.product.name, self.context.get('lang', 'en'))


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id',
            'subtotal',
            'tax_amount',
            'tax_rate',
            'total_amount',
            'status',
            'status_display',
            'payment_status',
            'payment_method',
            'shipping_address',
            'notes',
            'items',
            'created_at',
            'updated_at',
            'paid_at',
            'shipped_at',
            'delivered_at',
        ]
        read_only_fields = fields


class AdminOrderSerializer(OrderSerializer):
    """Back-office view: adds the buyer and gateway correlation fields."""

    business_name = serializers.CharField(source='user.business_name', read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + [
            'user',
            'business_name',
            'user_email',
            'session_id',
            'payment_intent_id',
            'version',
        ]
        read_only_fields = fields


class OrderLineInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class ShippingAddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    city = serializers.CharField(max_length=100, required=False, allow_blank=True)
    postal_code = serializers.CharField(max_length=20, required=False, allow_blank=True)
    country = serializers.CharField(max_length=100, required=False, allow_blank=True)


class OrderCreateSerializer(serializers.Serializer):
    """
    Order placement request.

    Unit prices are not accepted; anything the client sends besides
    product and quantity is ignored.
    """

    items = OrderLineInputSerializer(many=True, allow_empty=False)
    # Completeness of the address is checked by the service so the
    # error names every missing field at once.
    shipping_address = ShippingAddressSerializer()
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CARD)
    notes = serializers.CharField(required=False, allow_blank=True, default='', max_length=2000)


class CheckoutSessionSerializer(serializers.Serializer):
    items = OrderLineInputSerializer(many=True, required=False)


class ConfirmPaymentSerializer(serializers.Serializer):
    payment_intent_id = serializers.CharField(max_length=255)


class AdminOrderUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices, required=False)
    force = serializers.BooleanField(default=False)
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)

    def validate(self, attrs):
        if 'status' not in attrs and 'payment_status' not in attrs:
            raise serializers.ValidationError('Provide status and/or payment_status.')
        return attrs
