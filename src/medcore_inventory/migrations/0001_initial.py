# Generated manually for standalone medcore-inventory package

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="InventoryLot",
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
                ("pharmacy_id", models.CharField(db_index=True, max_length=64)),
                ("product_ref", models.CharField(db_index=True, max_length=64)),
                ("batch_number", models.CharField(max_length=64)),
                ("expiry_date", models.DateField()),
                ("manufacturing_date", models.DateField(blank=True, null=True)),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("reserved_quantity", models.PositiveIntegerField(default=0)),
                ("damaged_quantity", models.PositiveIntegerField(default=0)),
                ("returned_quantity", models.PositiveIntegerField(default=0)),
                ("available_quantity", models.IntegerField(default=0)),
                ("reorder_level", models.PositiveIntegerField(default=10)),
                ("expiry_alert_days", models.PositiveIntegerField(default=90)),
                ("is_recalled", models.BooleanField(default=False)),
                ("recall_reason", models.CharField(blank=True, max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("low_stock", "Low stock"),
                            ("out_of_stock", "Out of stock"),
                            ("near_expiry", "Near expiry"),
                            ("expired", "Expired"),
                            ("recalled", "Recalled"),
                        ],
                        default="out_of_stock",
                        help_text="Display cache; recomputed on every read and write",
                        max_length=20,
                    ),
                ),
                (
                    "transaction_history",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Append-only list of stock movements",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["pharmacy_id", "product_ref", "expiry_date"],
                        name="medcore_inv_pharmac_eaafa5_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("pharmacy_id", "product_ref", "batch_number"),
                        name="medcore_inventory_lot_unique_batch",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("available_quantity__gte", 0)),
                        name="medcore_inventory_lot_available_gte_0",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "available_quantity",
                                models.F("quantity")
                                - models.F("reserved_quantity")
                                - models.F("damaged_quantity")
                                - models.F("returned_quantity"),
                            )
                        ),
                        name="medcore_inventory_lot_available_balance",
                    ),
                ],
            },
        ),
    ]
