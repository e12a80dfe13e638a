"""Tests for pure lot status derivation and stock arithmetic."""
from datetime import date, timedelta

import pytest

from medcore_inventory.exceptions import InsufficientStock
from medcore_inventory.status import LotStatus, StockLevels, compute_status

TODAY = date(2025, 6, 1)


def status(expiry_in_days, available, reorder_level=10, alert_days=90, recalled=False):
    return compute_status(
        TODAY + timedelta(days=expiry_in_days),
        available,
        reorder_level,
        alert_days,
        is_recalled=recalled,
        today=TODAY,
    )


class TestComputeStatus:
    """Precedence: recalled > expired > near_expiry > out_of_stock > low_stock > active."""

    def test_active(self):
        assert status(365, 50) == LotStatus.ACTIVE

    def test_low_stock_at_reorder_level(self):
        assert status(365, 10) == LotStatus.LOW_STOCK
        assert status(365, 11) == LotStatus.ACTIVE

    def test_out_of_stock(self):
        assert status(365, 0) == LotStatus.OUT_OF_STOCK

    def test_near_expiry_boundary(self):
        assert status(90, 50) == LotStatus.NEAR_EXPIRY
        assert status(91, 50) == LotStatus.ACTIVE

    def test_expiring_today_is_expired(self):
        assert status(0, 50) == LotStatus.EXPIRED
        assert status(-1, 50) == LotStatus.EXPIRED

    def test_expired_beats_out_of_stock(self):
        assert status(-5, 0) == LotStatus.EXPIRED

    def test_near_expiry_beats_low_stock(self):
        assert status(30, 2) == LotStatus.NEAR_EXPIRY

    def test_recalled_beats_everything(self):
        assert status(-5, 0, recalled=True) == LotStatus.RECALLED
        assert status(365, 50, recalled=True) == LotStatus.RECALLED


class TestStockLevels:
    """available = quantity - reserved - damaged - returned, never negative."""

    def test_available(self):
        assert StockLevels(100, 10, 5, 3).available == 82

    def test_apply_returns_new_levels(self):
        levels = StockLevels(100).apply(reserved=30)
        assert levels == StockLevels(100, 30, 0, 0)
        assert levels.available == 70

    def test_apply_rejects_negative_available(self):
        with pytest.raises(InsufficientStock) as exc_info:
            StockLevels(10, 8).apply('lot-1', reserved=5)

        assert exc_info.value.field == 'available'
        assert exc_info.value.requested == 5
        assert exc_info.value.available == 2

    def test_apply_rejects_negative_counter(self):
        with pytest.raises(InsufficientStock) as exc_info:
            StockLevels(10, 2).apply('lot-1', reserved=-3)

        assert exc_info.value.field == 'reserved'

    def test_as_fields(self):
        fields = StockLevels(20, 5, 1, 2).as_fields()
        assert fields == {
            'quantity': 20,
            'reserved_quantity': 5,
            'damaged_quantity': 1,
            'returned_quantity': 2,
            'available_quantity': 12,
        }
