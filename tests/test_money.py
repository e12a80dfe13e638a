"""Tests for the Money value object."""
from decimal import Decimal

import pytest

from medcore_money import CurrencyMismatchError, Money


class TestMoney:
    """Currency-aware arithmetic and comparison."""

    def test_amount_is_normalized_to_decimal(self):
        money = Money('1000', 'inr')
        assert money.amount == Decimal('1000')
        assert money.currency == 'INR'

    def test_float_input_goes_through_str(self):
        assert Money(0.1, 'USD').amount == Decimal('0.1')

    def test_subtraction(self):
        remaining = Money('1000', 'INR') - Money('400', 'INR')
        assert remaining == Money('600', 'INR')

    def test_quantize_uses_currency_decimals(self):
        assert Money('10.005', 'INR').quantized().amount == Decimal('10.00')
        assert Money('10.015', 'INR').quantized().amount == Decimal('10.02')
        assert Money('1500.6', 'JPY').quantized().amount == Decimal('1501')
        assert Money('1.2345', 'KWD').quantized().amount == Decimal('1.234')

    def test_mixed_currencies_are_refused(self):
        with pytest.raises(CurrencyMismatchError):
            Money('1', 'INR') + Money('1', 'USD')
        with pytest.raises(CurrencyMismatchError):
            Money('1', 'INR') < Money('1', 'USD')

    def test_comparisons(self):
        assert Money('700', 'INR') > Money('600', 'INR')
        assert Money('600', 'INR') <= Money('600.00', 'INR')

    def test_sign(self):
        assert not Money('0', 'INR').is_positive()
        assert not Money('-5', 'INR').is_positive()
        assert Money('0.01', 'INR').is_positive()
