# Generated manually for standalone medcore-payments package

import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models

import medcore_basemodels.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("contenttypes", "0002_remove_content_type_name"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "lock_version",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Row version for optimistic concurrency control",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Cached status of the last timeline entry",
                        max_length=40,
                    ),
                ),
                (
                    "timeline",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Append-only list of status transitions",
                    ),
                ),
                (
                    "number",
                    models.CharField(
                        help_text="Document number, e.g. PAY2506010001",
                        max_length=32,
                        unique=True,
                    ),
                ),
                (
                    "entity_type",
                    models.CharField(
                        choices=[
                            ("order", "Order"),
                            ("appointment", "Appointment"),
                            ("subscription", "Subscription"),
                            ("membership", "Membership"),
                            ("other", "Other"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "entity_ref",
                    models.CharField(
                        db_index=True,
                        help_text="Owner reference (document number or id)",
                        max_length=64,
                    ),
                ),
                ("entity_id", models.CharField(blank=True, max_length=64)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="INR", max_length=3)),
                (
                    "refund_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0"),
                        max_digits=12,
                    ),
                ),
                ("payment_method", models.CharField(blank=True, max_length=30)),
                ("gateway_ref", models.CharField(blank=True, max_length=100)),
                ("captured_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("last_retry_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.CharField(blank=True, max_length=255)),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        validators=[medcore_basemodels.validators.validate_extension_map],
                    ),
                ),
                (
                    "entity_content_type",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="contenttypes.contenttype",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["entity_type", "entity_ref"],
                        name="medcore_pay_entity__305b44_idx",
                    ),
                    models.Index(
                        fields=["entity_content_type", "entity_id"],
                        name="medcore_pay_entity__f8b6c8_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="medcore_payments_amount_gt_0",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("refund_amount__gte", 0)),
                        name="medcore_payments_refund_gte_0",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("refund_amount__lte", models.F("amount"))),
                        name="medcore_payments_refund_lte_amount",
                    ),
                ],
            },
        ),
    ]
