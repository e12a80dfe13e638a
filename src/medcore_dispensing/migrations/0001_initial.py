# Generated manually for standalone medcore-dispensing package

import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("medcore_erx", "0001_initial"),
        ("medcore_inventory", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="ApprovedSubstitute",
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
                ("product_ref", models.CharField(db_index=True, max_length=64)),
                ("substitute_ref", models.CharField(max_length=64)),
                (
                    "priority",
                    models.PositiveIntegerField(
                        default=100,
                        help_text="Lower values are tried first",
                    ),
                ),
                ("active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["product_ref", "priority", "substitute_ref"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("product_ref", "substitute_ref"),
                        name="medcore_dispensing_substitute_unique_pair",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DispensingRecord",
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
                    "prescription_version",
                    models.PositiveIntegerField(
                        help_text="Prescription version the dispense was checked against",
                    ),
                ),
                ("line_id", models.CharField(db_index=True, max_length=32)),
                ("pharmacy_id", models.CharField(db_index=True, max_length=64)),
                (
                    "product_ref",
                    models.CharField(
                        help_text="Product actually handed over",
                        max_length=64,
                    ),
                ),
                ("prescribed_product_ref", models.CharField(max_length=64)),
                (
                    "substituted_product_ref",
                    models.CharField(
                        blank=True,
                        help_text="Set when an approved substitute replaced the prescribed product",
                        max_length=64,
                    ),
                ),
                ("substitution_reason", models.CharField(blank=True, max_length=255)),
                ("quantity_dispensed", models.PositiveIntegerField()),
                (
                    "kind",
                    models.CharField(
                        choices=[("dispense", "Dispense"), ("return", "Return")],
                        default="dispense",
                        max_length=10,
                    ),
                ),
                (
                    "order_ref",
                    models.CharField(blank=True, db_index=True, max_length=64),
                ),
                ("batch_number", models.CharField(max_length=64)),
                ("expiry_date", models.DateField()),
                ("dispensed_by", models.CharField(blank=True, max_length=64)),
                ("dispensed_at", models.DateTimeField()),
                ("note", models.TextField(blank=True)),
                (
                    "lot",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="dispensing_records",
                        to="medcore_inventory.inventorylot",
                    ),
                ),
                (
                    "prescription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="dispensing_records",
                        to="medcore_erx.prescription",
                    ),
                ),
                (
                    "supersedes",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="returns",
                        to="medcore_dispensing.dispensingrecord",
                    ),
                ),
            ],
            options={
                "ordering": ["dispensed_at", "created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity_dispensed__gt", 0)),
                        name="medcore_dispensing_record_quantity_gt_0",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("kind", "dispense"),
                            ("supersedes__isnull", False),
                            _connector="OR",
                        ),
                        name="medcore_dispensing_return_has_original",
                    ),
                ],
            },
        ),
    ]
