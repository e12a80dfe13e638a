"""Dispensing record and substitution models."""

from django.db import models
from django.db.models import Q

from medcore_basemodels.models import BaseModel

from .exceptions import ImmutableRecordError


class DispensingRecordQuerySet(models.QuerySet):
    """QuerySet that refuses bulk deletes."""

    def delete(self):
        raise ImmutableRecordError(
            "Dispensing records cannot be deleted; record a return instead"
        )


class DispensingRecord(BaseModel):
    """
    One (prescription line, lot) fulfillment.

    Created only by medcore_dispensing.services. Records are never edited
    or deleted: a return is a new record of kind 'return' that supersedes
    the original, and net dispensed = dispenses - returns.
    """

    class Kind(models.TextChoices):
        DISPENSE = 'dispense', 'Dispense'
        RETURN = 'return', 'Return'

    prescription = models.ForeignKey(
        'medcore_erx.Prescription',
        on_delete=models.PROTECT,
        related_name='dispensing_records',
    )
    prescription_version = models.PositiveIntegerField(
        help_text="Prescription version the dispense was checked against",
    )
    line_id = models.CharField(max_length=32, db_index=True)

    lot = models.ForeignKey(
        'medcore_inventory.InventoryLot',
        on_delete=models.PROTECT,
        related_name='dispensing_records',
    )
    pharmacy_id = models.CharField(max_length=64, db_index=True)
    product_ref = models.CharField(
        max_length=64,
        help_text="Product actually handed over",
    )
    prescribed_product_ref = models.CharField(max_length=64)
    substituted_product_ref = models.CharField(
        max_length=64,
        blank=True,
        help_text="Set when an approved substitute replaced the prescribed product",
    )
    substitution_reason = models.CharField(max_length=255, blank=True)

    quantity_dispensed = models.PositiveIntegerField()
    kind = models.CharField(max_length=10, choices=Kind.choices, default=Kind.DISPENSE)
    supersedes = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='returns',
    )
    order_ref = models.CharField(max_length=64, blank=True, db_index=True)

    # Lot snapshot at dispense time
    batch_number = models.CharField(max_length=64)
    expiry_date = models.DateField()

    dispensed_by = models.CharField(max_length=64, blank=True)
    dispensed_at = models.DateTimeField()
    note = models.TextField(blank=True)

    objects = DispensingRecordQuerySet.as_manager()

    class Meta:
        app_label = 'medcore_dispensing'
        ordering = ['dispensed_at', 'created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity_dispensed__gt=0),
                name='medcore_dispensing_record_quantity_gt_0',
            ),
            models.CheckConstraint(
                condition=Q(kind='dispense') | Q(supersedes__isnull=False),
                name='medcore_dispensing_return_has_original',
            ),
        ]

    def __str__(self):
        return f"{self.kind} {self.product_ref} x{self.quantity_dispensed} ({self.batch_number})"

    def save(self, *args, **kwargs):
        """Records are write-once."""
        if not self._state.adding:
            raise ImmutableRecordError(
                f"Dispensing record {self.pk} is immutable; record a return instead"
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(
            f"Dispensing record {self.pk} cannot be deleted; record a return instead"
        )


class ApprovedSubstitute(BaseModel):
    """A product that may replace another when substitution is allowed."""

    product_ref = models.CharField(max_length=64, db_index=True)
    substitute_ref = models.CharField(max_length=64)
    priority = models.PositiveIntegerField(
        default=100,
        help_text="Lower values are tried first",
    )
    active = models.BooleanField(default=True)

    class Meta:
        app_label = 'medcore_dispensing'
        ordering = ['product_ref', 'priority', 'substitute_ref']
        constraints = [
            models.UniqueConstraint(
                fields=['product_ref', 'substitute_ref'],
                name='medcore_dispensing_substitute_unique_pair',
            ),
        ]

    def __str__(self):
        return f"{self.product_ref} -> {self.substitute_ref} (p{self.priority})"
