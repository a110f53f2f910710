from decimal import Decimal

import django.core.validators
from django.db import migrations, models

import products.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "name",
                    models.JSONField(
                        default=dict,
                        help_text="Product name per language",
                        validators=[products.models.validate_localized_map],
                    ),
                ),
                (
                    "description",
                    models.JSONField(blank=True, default=dict, validators=[products.models.validate_localized_map]),
                ),
                (
                    "long_description",
                    models.JSONField(blank=True, default=dict, validators=[products.models.validate_localized_map]),
                ),
                (
                    "ingredients",
                    models.JSONField(blank=True, default=dict, validators=[products.models.validate_localized_map]),
                ),
                (
                    "packaging",
                    models.JSONField(blank=True, default=dict, validators=[products.models.validate_localized_map]),
                ),
                (
                    "shelf_life",
                    models.JSONField(blank=True, default=dict, validators=[products.models.validate_localized_map]),
                ),
                (
                    "storage",
                    models.JSONField(blank=True, default=dict, validators=[products.models.validate_localized_map]),
                ),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Wholesale price per unit, tax excluded",
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                (
                    "unit",
                    models.CharField(
                        choices=[("box", "Box"), ("kg", "Kilogram"), ("tray", "Tray"), ("unit", "Unit")],
                        default="box",
                        max_length=10,
                    ),
                ),
                (
                    "min_order_quantity",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Smallest quantity accepted on an order line",
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("display_order", models.IntegerField(db_index=True, default=0)),
                ("image_url", models.URLField(blank=True, max_length=500)),
                ("category", models.CharField(blank=True, db_index=True, max_length=100)),
                (
                    "is_active",
                    models.BooleanField(
                        default=True,
                        help_text="If False, product is hidden from customers but preserved for old orders",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "ordering": ["display_order", "id"],
                "indexes": [
                    models.Index(fields=["is_active", "display_order"], name="product_active_order_idx"),
                ],
            },
        ),
    ]
