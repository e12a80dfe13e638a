"""Exceptions for medcore-sequence."""

from medcore_basemodels.exceptions import (
    ContentionError,
    MedcoreError,
    StoreUnavailable,
    ValidationFailure,
)


class SequenceError(MedcoreError):
    """Base exception for sequence errors."""
    pass


class InvalidPrefix(SequenceError, ValidationFailure):
    """Raised when a document prefix is not 1-10 upper-case letters."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(f"Invalid document prefix {prefix!r}")


class InvalidDocumentNumber(SequenceError, ValidationFailure):
    """Raised when a string does not parse as a document number."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Not a document number: {value!r}")


class AllocationExhausted(SequenceError, ContentionError):
    """Raised when every allocation attempt for a partition collided."""

    def __init__(self, partition: str, attempts: int):
        self.partition = partition
        self.attempts = attempts
        super().__init__(
            f"Could not allocate in partition '{partition}' after {attempts} attempts"
        )


class AllocatorUnavailable(SequenceError, StoreUnavailable):
    """Raised when the counter store cannot be reached."""

    def __init__(self, partition: str, reason: str):
        self.partition = partition
        self.reason = reason
        super().__init__(f"Allocator unavailable for '{partition}': {reason}")
