"""
Product serializers for the wholesale catalog API.

Catalog payloads come in two shapes: the public one, which never carries
``price``, and the priced one served to approved buyers and admins. The
field is left out of the payload entirely rather than nulled.
"""

from rest_framework import serializers

from .models import DEFAULT_LANGUAGE, LOCALIZED_FIELDS, SUPPORTED_LANGUAGES, Product, localize


class ProductSerializer(serializers.ModelSerializer):
    """
    Admin serializer: localized fields as raw ``{lang: text}`` maps.
    """

    class Meta:
        model = Product
        fields = [
            'id',
            *LOCALIZED_FIELDS,
            'price',
            'unit',
            'min_order_quantity',
            'display_order',
            'image_url',
            'category',
            'is_active',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id',
            'created_at',
            'updated_at',
        ]

    def validate_name(self, value):
        if not any(text.strip() for text in value.values()):
            raise serializers.ValidationError("A name is required in at least one language.")
        return value

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError("Price cannot be negative.")
        return value


class ProductCatalogSerializer(serializers.ModelSerializer):
    """
    Public catalog entry with text flattened to the requested language.
    """

    name = serializers.SerializerMethodField()
    description = serializers.SerializerMethodField()
    long_description = serializers.SerializerMethodField()
    ingredients = serializers.SerializerMethodField()
    packaging = serializers.SerializerMethodField()
    shelf_life = serializers.SerializerMethodField()
    storage = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id',
            *LOCALIZED_FIELDS,
            'unit',
            'min_order_quantity',
            'display_order',
            'image_url',
            'category',
        ]
        read_only_fields = fields

    @property
    def lang(self):
        lang = self.context.get('lang', DEFAULT_LANGUAGE)
        return lang if lang in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE

    def get_name(self, obj):
        return localize(obj.name, self.lang)

    def get_description(self, obj):
        return localize(obj.description, self.lang)

    def get_long_description(self, obj):
        return localize(obj.long_description, self.lang)

    def get_ingredients(self, obj):
        return localize(obj.ingredients, self.lang)

    def get_packaging(self, obj):
        return localize(obj.packaging, self.lang)

    def get_shelf_life(self, obj):
        return localize(obj.shelf_life, self.lang)

    def get_storage(self, obj):
        return localize(obj.storage, self.lang)


class PricedProductCatalogSerializer(ProductCatalogSerializer):
    """Catalog entry for approved buyers and admins."""

    class Meta(ProductCatalogSerializer.Meta):
        fields = ProductCatalogSerializer.Meta.fields + ['price']
        read_only_fields = fields
