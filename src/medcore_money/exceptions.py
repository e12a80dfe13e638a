"""Exceptions for medcore-money."""


class CurrencyMismatchError(ValueError):
    """Raised when attempting operations between different currencies."""
    pass
