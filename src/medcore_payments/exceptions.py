"""Exceptions for medcore-payments."""

from medcore_basemodels.exceptions import (
    BusinessRuleRejection,
    ContentionError,
    MedcoreError,
    ValidationFailure,
)


class PaymentError(MedcoreError):
    """Base exception for payment errors."""
    pass


class InvalidPaymentRequest(PaymentError, ValidationFailure):
    """Raised for non-positive amounts, unknown entity types and the like."""
    pass


class RefundExceedsCaptured(PaymentError, ValidationFailure):
    """Raised when a refund is larger than the unrefunded balance."""

    def __init__(self, number: str, requested, refundable):
        self.number = number
        self.requested = requested
        self.refundable = refundable
        super().__init__(
            f"Payment {number}: refund of {requested} exceeds refundable {refundable}"
        )


class CaptureRetryNotDue(PaymentError, ValidationFailure):
    """Raised when a capture is retried before its backoff elapsed."""

    retryable = True

    def __init__(self, number: str, due_at):
        self.number = number
        self.due_at = due_at
        super().__init__(f"Payment {number}: next capture attempt allowed at {due_at}")


class GatewayError(PaymentError):
    """Raised by gateway adapters when a capture call fails."""

    retryable = True


class CaptureFailed(PaymentError):
    """Raised when the gateway rejected a capture that may still be retried."""

    retryable = True

    def __init__(self, number: str, retry_count: int, next_retry_at, reason: str):
        self.number = number
        self.retry_count = retry_count
        self.next_retry_at = next_retry_at
        self.reason = reason
        super().__init__(
            f"Payment {number}: capture attempt {retry_count} failed ({reason}); "
            f"retry after {next_retry_at}"
        )


class PaymentRetriesExhausted(PaymentError, BusinessRuleRejection):
    """Raised when captures failed too often; the payment is now 'failed'."""

    def __init__(self, number: str, attempts: int):
        self.number = number
        self.attempts = attempts
        super().__init__(
            f"Payment {number}: capture failed {attempts} times; initiate a new payment"
        )


class RefundContention(PaymentError, ContentionError):
    """Raised when concurrent writers kept invalidating a refund."""

    def __init__(self, number: str, attempts: int):
        self.number = number
        self.attempts = attempts
        super().__init__(f"Payment {number}: refund gave up after {attempts} conflicting attempts")
