"""Exceptions for medcore-inventory."""

from medcore_basemodels.exceptions import (
    BusinessRuleRejection,
    ContentionError,
    MedcoreError,
    ValidationFailure,
)


class InventoryError(MedcoreError):
    """Base exception for inventory errors."""
    pass


class InvalidQuantity(InventoryError, ValidationFailure):
    """Raised when a mutation quantity is not a positive integer."""

    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Quantity must be a positive integer, got {quantity!r}")


class BatchMismatch(InventoryError, ValidationFailure):
    """Raised when a receipt contradicts the stored batch (e.g. expiry date)."""

    def __init__(self, batch_number: str, detail: str):
        self.batch_number = batch_number
        self.detail = detail
        super().__init__(f"Batch {batch_number}: {detail}")


class InsufficientStock(InventoryError, BusinessRuleRejection):
    """Raised when a mutation would drive a lot counter below zero."""

    def __init__(self, lot_id, field: str, requested: int, available: int):
        self.lot_id = lot_id
        self.field = field
        self.requested = requested
        self.available = available
        super().__init__(
            f"Lot {lot_id}: {field} would go negative "
            f"(requested {requested}, available {available})"
        )


class LotNotSellable(InventoryError, BusinessRuleRejection):
    """Raised when reserving from an expired or recalled lot."""

    def __init__(self, lot_id, status: str):
        self.lot_id = lot_id
        self.status = status
        super().__init__(f"Lot {lot_id} is {status} and cannot be sold")


class LotContention(InventoryError, ContentionError):
    """Raised when concurrent writers kept invalidating a lot mutation."""

    def __init__(self, lot_id, attempts: int):
        self.lot_id = lot_id
        self.attempts = attempts
        super().__init__(f"Lot {lot_id}: gave up after {attempts} conflicting attempts")
