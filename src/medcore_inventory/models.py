"""Inventory lot model."""

from django.db import models
from django.db.models import F, Q

from medcore_basemodels.models import BaseModel, OptimisticLockModel

from .status import LotStatus, derive_status


class InventoryLot(BaseModel, OptimisticLockModel):
    """
    One batch of one product held by one pharmacy.

    Counters:
        quantity: units physically held (including reserved and held units)
        reserved_quantity: promised to an in-flight dispense
        damaged_quantity: held back as damaged
        returned_quantity: patient returns held back pending inspection
        available_quantity: quantity - reserved - damaged - returned

    The database enforces the available_quantity balance and that it never
    goes negative. Mutations go through medcore_inventory.services so that
    each write is a compare-and-swap on lock_version.
    """

    pharmacy_id = models.CharField(max_length=64, db_index=True)
    product_ref = models.CharField(max_length=64, db_index=True)
    batch_number = models.CharField(max_length=64)
    expiry_date = models.DateField()
    manufacturing_date = models.DateField(null=True, blank=True)

    quantity = models.PositiveIntegerField(default=0)
    reserved_quantity = models.PositiveIntegerField(default=0)
    damaged_quantity = models.PositiveIntegerField(default=0)
    returned_quantity = models.PositiveIntegerField(default=0)
    available_quantity = models.IntegerField(default=0)

    reorder_level = models.PositiveIntegerField(default=10)
    expiry_alert_days = models.PositiveIntegerField(default=90)

    is_recalled = models.BooleanField(default=False)
    recall_reason = models.CharField(max_length=255, blank=True)

    status = models.CharField(
        max_length=20,
        choices=LotStatus.choices,
        default=LotStatus.OUT_OF_STOCK,
        help_text="Display cache; recomputed on every read and write",
    )
    transaction_history = models.JSONField(
        default=list,
        blank=True,
        help_text="Append-only list of stock movements",
    )

    class Meta:
        app_label = 'medcore_inventory'
        constraints = [
            models.UniqueConstraint(
                fields=['pharmacy_id', 'product_ref', 'batch_number'],
                name='medcore_inventory_lot_unique_batch',
            ),
            models.CheckConstraint(
                condition=Q(available_quantity__gte=0),
                name='medcore_inventory_lot_available_gte_0',
            ),
            models.CheckConstraint(
                condition=Q(available_quantity=(
                    F('quantity') - F('reserved_quantity')
                    - F('damaged_quantity') - F('returned_quantity')
                )),
                name='medcore_inventory_lot_available_balance',
            ),
        ]
        indexes = [
            models.Index(fields=['pharmacy_id', 'product_ref', 'expiry_date']),
        ]

    def __str__(self):
        return f"{self.product_ref} {self.batch_number} @ {self.pharmacy_id}"

    def current_status(self, now=None) -> str:
        """Recomputed status; the stored `status` column may lag."""
        return derive_status(self, now)
