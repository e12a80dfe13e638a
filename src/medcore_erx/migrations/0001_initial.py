# Generated manually for standalone medcore-erx package

import uuid

from django.db import migrations, models

import medcore_basemodels.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Prescription",
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
                ("doctor_id", models.CharField(db_index=True, max_length=64)),
                ("patient_id", models.CharField(db_index=True, max_length=64)),
                (
                    "appointment_ref",
                    models.CharField(blank=True, db_index=True, max_length=64),
                ),
                ("diagnosis", models.JSONField(blank=True, default=list)),
                ("items", models.JSONField(default=list)),
                ("notes", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("signed", "Signed"),
                            ("dispensed", "Dispensed"),
                            ("expired", "Expired"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=20,
                    ),
                ),
                ("version", models.PositiveIntegerField(default=1)),
                ("hash", models.CharField(blank=True, max_length=128)),
                ("hash_algorithm", models.CharField(default="sha256", max_length=20)),
                ("signature", models.CharField(blank=True, max_length=128)),
                (
                    "signature_algorithm",
                    models.CharField(
                        blank=True,
                        help_text="HMAC digest algorithm used for `signature`",
                        max_length=20,
                    ),
                ),
                ("signed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "expires_at",
                    models.DateTimeField(blank=True, db_index=True, null=True),
                ),
                ("dispensed_at", models.DateTimeField(blank=True, null=True)),
                ("revisions", models.JSONField(blank=True, default=list)),
                ("cancelled_reason", models.CharField(blank=True, max_length=255)),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        validators=[medcore_basemodels.validators.validate_extension_map],
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("version__gte", 1)),
                        name="medcore_erx_prescription_version_gte_1",
                    )
                ],
            },
        ),
    ]
