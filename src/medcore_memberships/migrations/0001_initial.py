# Generated manually for standalone medcore-memberships package

import uuid

import django.db.models.deletion
from django.db import migrations, models

import medcore_basemodels.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Membership",
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
                        help_text="Document number, e.g. MEM2506010001",
                        max_length=32,
                        unique=True,
                    ),
                ),
                ("patient_id", models.CharField(db_index=True, max_length=64)),
                ("plan_code", models.CharField(db_index=True, max_length=32)),
                ("plan_snapshot", models.JSONField(default=dict)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(db_index=True)),
                ("auto_renew", models.BooleanField(default=False)),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("app", "App"),
                            ("web", "Web"),
                            ("phone", "Phone"),
                            ("in_store", "In store"),
                        ],
                        default="app",
                        max_length=10,
                    ),
                ),
                ("family_members", models.JSONField(blank=True, default=list)),
                ("renewal_history", models.JSONField(blank=True, default=list)),
                ("cancellation_reason", models.CharField(blank=True, max_length=255)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
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
            },
        ),
        migrations.CreateModel(
            name="MembershipBenefitUsage",
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
                ("benefit_type", models.CharField(max_length=40)),
                ("used_count", models.PositiveIntegerField(default=0)),
                ("month_count", models.PositiveIntegerField(default=0)),
                ("limit_per_month", models.PositiveIntegerField(blank=True, null=True)),
                ("limit_total", models.PositiveIntegerField(blank=True, null=True)),
                ("last_used_at", models.DateTimeField(blank=True, null=True)),
                (
                    "membership",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="benefit_usage",
                        to="medcore_memberships.membership",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("membership", "benefit_type"),
                        name="medcore_memberships_usage_unique_benefit",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("limit_total__isnull", True),
                            ("used_count__lte", models.F("limit_total")),
                            _connector="OR",
                        ),
                        name="medcore_memberships_usage_within_total",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("limit_per_month__isnull", True),
                            ("month_count__lte", models.F("limit_per_month")),
                            _connector="OR",
                        ),
                        name="medcore_memberships_usage_within_month",
                    ),
                ],
            },
        ),
    ]
