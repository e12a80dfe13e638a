"""Exceptions for medcore-appointments."""

from medcore_basemodels.exceptions import MedcoreError, ValidationFailure


class AppointmentError(MedcoreError):
    """Base exception for appointment errors."""
    pass


class InvalidAppointmentRequest(AppointmentError, ValidationFailure):
    """Raised for bad booking data (type, duration, missing fee)."""
    pass
