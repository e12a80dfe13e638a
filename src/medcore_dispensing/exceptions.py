"""Exceptions for medcore-dispensing."""

from medcore_basemodels.exceptions import (
    BusinessRuleRejection,
    ContentionError,
    IntegrityFailure,
    MedcoreError,
    ValidationFailure,
)


class DispensingError(MedcoreError):
    """Base exception for dispensing errors."""
    pass


class InvalidDispenseRequest(DispensingError, ValidationFailure):
    """Raised when requested items are malformed."""
    pass


class LineDiscontinued(DispensingError, ValidationFailure):
    """Raised when dispensing a discontinued line."""

    def __init__(self, line_id: str):
        self.line_id = line_id
        super().__init__(f"Line '{line_id}' is discontinued")


class RefillLimitExceeded(DispensingError, BusinessRuleRejection):
    """Raised when a line would pass quantity x (1 + refills) over its lifetime."""

    def __init__(self, line_id: str, requested: int, remaining: int, ceiling: int):
        self.line_id = line_id
        self.requested = requested
        self.remaining = remaining
        self.ceiling = ceiling
        super().__init__(
            f"Line '{line_id}': requested {requested}, only {remaining} of "
            f"{ceiling} left to dispense"
        )


class LotUnavailable(DispensingError, BusinessRuleRejection):
    """Raised when sellable stock cannot cover a line."""

    def __init__(self, line_id: str, product_ref: str, requested: int, available: int):
        self.line_id = line_id
        self.product_ref = product_ref
        self.requested = requested
        self.available = available
        super().__init__(
            f"Line '{line_id}' ({product_ref}): requested {requested}, "
            f"{available} available"
        )


class DispenseContention(DispensingError, ContentionError):
    """Raised when reservations kept losing races after re-planning."""

    def __init__(self, prescription_id, attempts: int):
        self.prescription_id = prescription_id
        self.attempts = attempts
        super().__init__(
            f"Prescription {prescription_id}: could not reserve stock after {attempts} plans"
        )


class CompensationFailed(DispensingError, IntegrityFailure):
    """Raised when releasing reservations after a failure itself failed."""

    def __init__(self, prescription_id, outstanding: list):
        self.prescription_id = prescription_id
        self.outstanding = outstanding
        super().__init__(
            f"Prescription {prescription_id}: {len(outstanding)} reservations "
            "could not be released and need manual review"
        )


class ImmutableRecordError(DispensingError, ValidationFailure):
    """Raised when modifying or deleting a dispensing record."""
    pass


class ReturnExceedsDispensed(DispensingError, ValidationFailure):
    """Raised when returning more than is left on a dispensing record."""

    def __init__(self, record_id, requested: int, returnable: int):
        self.record_id = record_id
        self.requested = requested
        self.returnable = returnable
        super().__init__(
            f"Record {record_id}: cannot return {requested}, only {returnable} returnable"
        )
