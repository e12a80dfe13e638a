"""
Pure status derivation for inventory lots.

Status is never trusted as stored truth: services recompute it after every
mutation and before every decision, and the stored column is a display
cache only.
"""

from dataclasses import dataclass, replace
from datetime import date

from django.db import models

from medcore_basemodels.utils import as_date

from .exceptions import InsufficientStock


class LotStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    LOW_STOCK = 'low_stock', 'Low stock'
    OUT_OF_STOCK = 'out_of_stock', 'Out of stock'
    NEAR_EXPIRY = 'near_expiry', 'Near expiry'
    EXPIRED = 'expired', 'Expired'
    RECALLED = 'recalled', 'Recalled'


UNSELLABLE = frozenset({LotStatus.EXPIRED, LotStatus.RECALLED})


def compute_status(
    expiry_date: date,
    available_quantity: int,
    reorder_level: int,
    expiry_alert_days: int,
    is_recalled: bool = False,
    today: date = None,
) -> str:
    """
    Derive a lot status from its raw values.

    Precedence: recalled > expired > near_expiry > out_of_stock >
    low_stock > active. A lot expiring today is already expired.
    """
    today = today or as_date()

    if is_recalled:
        return LotStatus.RECALLED
    if expiry_date <= today:
        return LotStatus.EXPIRED
    if (expiry_date - today).days <= expiry_alert_days:
        return LotStatus.NEAR_EXPIRY
    if available_quantity <= 0:
        return LotStatus.OUT_OF_STOCK
    if available_quantity <= reorder_level:
        return LotStatus.LOW_STOCK
    return LotStatus.ACTIVE


def derive_status(lot, now=None) -> str:
    """Status of `lot` as of `now` (date, datetime or None for today)."""
    return compute_status(
        expiry_date=lot.expiry_date,
        available_quantity=lot.available_quantity,
        reorder_level=lot.reorder_level,
        expiry_alert_days=lot.expiry_alert_days,
        is_recalled=lot.is_recalled,
        today=as_date(now),
    )


@dataclass(frozen=True)
class StockLevels:
    """
    The four stored counters of a lot.

    available = quantity - reserved - damaged - returned, and every
    counter including available must stay >= 0.
    """

    quantity: int = 0
    reserved: int = 0
    damaged: int = 0
    returned: int = 0

    @classmethod
    def of(cls, lot) -> 'StockLevels':
        return cls(
            quantity=lot.quantity,
            reserved=lot.reserved_quantity,
            damaged=lot.damaged_quantity,
            returned=lot.returned_quantity,
        )

    @property
    def available(self) -> int:
        return self.quantity - self.reserved - self.damaged - self.returned

    def apply(self, lot_id=None, **deltas) -> 'StockLevels':
        """
        Return new levels with deltas applied.

        Raises:
            InsufficientStock: If any counter or available would go negative
        """
        new = replace(self, **{
            name: getattr(self, name) + delta for name, delta in deltas.items()
        })
        for name in ('quantity', 'reserved', 'damaged', 'returned'):
            if getattr(new, name) < 0:
                raise InsufficientStock(lot_id, name, -deltas[name], getattr(self, name))
        if new.available < 0:
            requested = self.available - new.available
            raise InsufficientStock(lot_id, 'available', requested, self.available)
        return new

    def as_fields(self) -> dict:
        return {
            'quantity': self.quantity,
            'reserved_quantity': self.reserved,
            'damaged_quantity': self.damaged,
            'returned_quantity': self.returned,
            'available_quantity': self.available,
        }
