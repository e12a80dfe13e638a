"""Money value object with currency-aware arithmetic."""

from decimal import Decimal, ROUND_HALF_EVEN
from dataclasses import dataclass

from medcore_money.exceptions import CurrencyMismatchError


# Minor-unit precision per currency for settlement
CURRENCY_DECIMALS = {
    'INR': 2, 'USD': 2, 'EUR': 2, 'GBP': 2, 'AED': 2,
    'SGD': 2, 'AUD': 2, 'CAD': 2,
    'JPY': 0, 'KRW': 0,
    'KWD': 3, 'BHD': 3,
}


@dataclass(frozen=True)
class Money:
    """
    Immutable money value object.

    Amounts are always Decimal. Arithmetic and comparison refuse to mix
    currencies, so a refund can never be checked against a capture in a
    different currency by accident.

    Usage:
        captured = Money("1000", "INR")
        refunded = Money("400", "INR")
        remaining = captured - refunded  # Money(Decimal("600"), "INR")
        remaining.quantized()            # Money(Decimal("600.00"), "INR")
    """
    amount: Decimal
    currency: str

    def __post_init__(self):
        """Normalize amount to Decimal and currency to upper case."""
        if not isinstance(self.amount, Decimal):
            # Use object.__setattr__ because dataclass is frozen
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        object.__setattr__(self, 'currency', self.currency.upper())

    def quantized(self) -> 'Money':
        """
        Return quantized to currency decimals for settlement.

        Uses banker's rounding (ROUND_HALF_EVEN).
        """
        decimals = CURRENCY_DECIMALS.get(self.currency, 2)
        quantized_amount = self.amount.quantize(
            Decimal(10) ** -decimals,
            rounding=ROUND_HALF_EVEN
        )
        return Money(quantized_amount, self.currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                f"Cannot {verb} {self.currency} and {other.currency}"
            )

    def __add__(self, other: 'Money') -> 'Money':
        """Add two Money objects with the same currency."""
        self._check_currency(other, 'add')
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        """Subtract two Money objects with the same currency."""
        self._check_currency(other, 'subtract')
        return Money(self.amount - other.amount, self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, 'compare')
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, 'compare')
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, 'compare')
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, 'compare')
        return self.amount >= other.amount

    def is_positive(self) -> bool:
        """Check if amount is greater than zero."""
        return self.amount > 0
