"""Sequence partition model for human-readable document numbers."""

from django.db import models

from medcore_basemodels.models import BaseModel


class SequencePartition(BaseModel):
    """
    High-water mark for one prefix+date partition.

    Document numbers look like "APT2506010001": prefix, YYMMDD, then a
    zero-padded sequence that starts at 1 each day. The counter lives in
    the database (not in process memory) so it survives restarts and is
    shared by every worker.

    Usage:
        from medcore_sequence.services import allocate

        number = allocate('APT', date(2025, 6, 1))
        # Returns: "APT2506010001"
    """

    partition = models.CharField(
        max_length=32,
        unique=True,
        help_text="Partition key: prefix + YYMMDD, e.g. 'APT250601'",
    )
    prefix = models.CharField(
        max_length=10,
        help_text="Document prefix, e.g. 'APT', 'PAY', 'MEM'",
    )
    partition_date = models.DateField(
        help_text="Calendar date this partition covers",
    )
    current_value = models.PositiveBigIntegerField(
        default=0,
        help_text="Highest sequence issued in this partition",
    )

    # BaseModel provides: id (UUID), created_at, updated_at

    class Meta:
        app_label = 'medcore_sequence'
        indexes = [
            models.Index(fields=['prefix', 'partition_date']),
        ]

    def __str__(self):
        return f"{self.partition}: {self.current_value}"
