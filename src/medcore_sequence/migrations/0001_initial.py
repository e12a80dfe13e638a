# Generated manually for standalone medcore-sequence package

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="SequencePartition",
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
                    "partition",
                    models.CharField(
                        help_text="Partition key: prefix + YYMMDD, e.g. 'APT250601'",
                        max_length=32,
                        unique=True,
                    ),
                ),
                (
                    "prefix",
                    models.CharField(
                        help_text="Document prefix, e.g. 'APT', 'PAY', 'MEM'",
                        max_length=10,
                    ),
                ),
                (
                    "partition_date",
                    models.DateField(help_text="Calendar date this partition covers"),
                ),
                (
                    "current_value",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Highest sequence issued in this partition",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["prefix", "partition_date"],
                        name="medcore_seq_prefix_69055d_idx",
                    )
                ],
            },
        ),
    ]
