"""Custom exceptions for medcore-erx."""

from medcore_basemodels.exceptions import IntegrityFailure, MedcoreError, ValidationFailure


class ErxError(MedcoreError):
    """Base exception for prescription errors."""
    pass


class InvalidClinicalContent(ErxError, ValidationFailure):
    """Raised when diagnosis, line items or notes are malformed."""
    pass


class InvalidLineItem(InvalidClinicalContent):
    """Raised when a line item is missing fields or has bad quantities."""
    pass


class UnknownLine(ErxError, ValidationFailure):
    """Raised when a line_id is not on the prescription."""

    def __init__(self, prescription_id, line_id: str):
        self.prescription_id = prescription_id
        self.line_id = line_id
        super().__init__(f"Prescription {prescription_id} has no line '{line_id}'")


class InvalidPrescriptionState(ErxError, ValidationFailure):
    """Raised when an operation is not valid for the prescription's status."""

    def __init__(self, prescription_id, status: str, action: str):
        self.prescription_id = prescription_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} prescription {prescription_id} in status '{status}'"
        )


class AlreadySigned(InvalidPrescriptionState):
    """Raised when signing or editing a prescription that is no longer a draft."""

    def __init__(self, prescription_id, status: str, action: str = "sign"):
        super().__init__(prescription_id, status, action)


class NotSigned(InvalidPrescriptionState):
    """Raised when amending a prescription that is not signed."""

    def __init__(self, prescription_id, status: str, action: str = "amend"):
        super().__init__(prescription_id, status, action)


class PrescriptionExpired(ErxError, ValidationFailure):
    """Raised when dispensing against an expired prescription."""

    def __init__(self, prescription_id, expires_at):
        self.prescription_id = prescription_id
        self.expires_at = expires_at
        super().__init__(f"Prescription {prescription_id} expired at {expires_at}")


class IntegrityViolation(ErxError, IntegrityFailure):
    """Raised when stored content does not match its digest or chain."""

    def __init__(self, prescription_id, detail: str):
        self.prescription_id = prescription_id
        self.detail = detail
        super().__init__(f"Prescription {prescription_id}: {detail}")


class ImmutablePrescriptionError(ErxError, IntegrityFailure):
    """Raised when saving signed clinical content outside amend()."""
    pass
