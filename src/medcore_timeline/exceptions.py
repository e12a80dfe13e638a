"""Custom exceptions for medcore-timeline."""

from medcore_basemodels.exceptions import ContentionError, MedcoreError, ValidationFailure


class TimelineError(MedcoreError):
    """Base exception for timeline errors."""
    pass


class InvalidTransition(TimelineError, ValidationFailure):
    """Raised when a status is not reachable from the current status."""

    def __init__(self, entity_type: str, from_state: str, to_state: str, reason: str = None):
        self.entity_type = entity_type
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or (
            f"{entity_type}: cannot transition from '{from_state}' to '{to_state}'"
        )
        super().__init__(self.reason)


class UnknownEntityType(TimelineError, ValidationFailure):
    """Raised when no transition table is registered for an entity type."""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"No transition table for entity type '{entity_type}'")


class TimelineNotStarted(TimelineError, ValidationFailure):
    """Raised when appending to an entity whose timeline has no creation entry."""
    pass


class TimelineAlreadyStarted(TimelineError, ValidationFailure):
    """Raised when starting a timeline that already has entries."""
    pass


class TimelineContention(TimelineError, ContentionError):
    """Raised when concurrent appends kept invalidating each other."""

    def __init__(self, entity_type: str, pk, attempts: int):
        self.entity_type = entity_type
        self.pk = pk
        self.attempts = attempts
        super().__init__(
            f"{entity_type} {pk}: timeline append gave up after {attempts} attempts"
        )
