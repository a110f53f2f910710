import django.core.serializers.json
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Alert",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "alert_type",
                    models.CharField(
                        choices=[
                            ("payment", "Payment Alert"),
                            ("reconciliation", "Reconciliation Alert"),
                            ("email", "E-mail Alert"),
                            ("application", "Application Alert"),
                        ],
                        db_index=True,
                        help_text="Type of alert",
                        max_length=50,
                    ),
                ),
                (
                    "severity",
                    models.CharField(
                        choices=[("info", "Info"), ("warning", "Warning"), ("critical", "Critical")],
                        db_index=True,
                        default="warning",
                        help_text="Alert severity",
                        max_length=20,
                    ),
                ),
                ("title", models.CharField(help_text="Alert title", max_length=200)),
                ("message", models.TextField(help_text="Alert message")),
                (
                    "source",
                    models.CharField(
                        help_text="Component that raised the alert (webhook, checkout, ...)", max_length=100
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("acknowledged", "Acknowledged"), ("resolved", "Resolved")],
                        db_index=True,
                        default="active",
                        help_text="Alert status",
                        max_length=20,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                        help_text="Correlation data: order id, session id, amounts",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("acknowledged_at", models.DateTimeField(blank=True, null=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Alert",
                "verbose_name_plural": "Alerts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "severity"], name="alert_status_severity_idx"),
                    models.Index(fields=["alert_type", "created_at"], name="alert_type_created_idx"),
                ],
            },
        ),
    ]
