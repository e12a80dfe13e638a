"""Medcore Money - Immutable Money value object with currency-aware arithmetic."""

__version__ = "0.1.0"

from medcore_money.money import Money, CURRENCY_DECIMALS
from medcore_money.exceptions import CurrencyMismatchError

__all__ = [
    "Money",
    "CURRENCY_DECIMALS",
    "CurrencyMismatchError",
]
