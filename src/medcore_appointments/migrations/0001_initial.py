# Generated manually for standalone medcore-appointments package

import uuid

import django.db.models.deletion
from django.db import migrations, models

import medcore_basemodels.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Appointment",
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
                        help_text="Document number, e.g. APT2506010001",
                        max_length=32,
                        unique=True,
                    ),
                ),
                ("doctor_id", models.CharField(db_index=True, max_length=64)),
                ("patient_id", models.CharField(db_index=True, max_length=64)),
                ("hospital_id", models.CharField(blank=True, max_length=64)),
                (
                    "appointment_type",
                    models.CharField(
                        choices=[
                            ("in_person", "In person"),
                            ("telemedicine", "Telemedicine"),
                            ("home_visit", "Home visit"),
                        ],
                        default="in_person",
                        max_length=20,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("app", "App"),
                            ("web", "Web"),
                            ("phone", "Phone"),
                            ("walk_in", "Walk-in"),
                        ],
                        default="app",
                        max_length=10,
                    ),
                ),
                ("slot_date", models.DateField(db_index=True)),
                ("slot_time", models.TimeField()),
                ("duration_minutes", models.PositiveIntegerField(default=15)),
                ("reason", models.TextField(blank=True)),
                (
                    "amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Consultation fee; None for free appointments",
                        max_digits=12,
                        null=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        validators=[medcore_basemodels.validators.validate_extension_map],
                    ),
                ),
                (
                    "rescheduled_from",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rescheduled_to",
                        to="medcore_appointments.appointment",
                    ),
                ),
            ],
            options={
                "ordering": ["slot_date", "slot_time"],
                "indexes": [
                    models.Index(
                        fields=["doctor_id", "slot_date"],
                        name="medcore_app_doctor__6c4fe1_idx",
                    )
                ],
            },
        ),
    ]
