"""Error taxonomy shared by every medcore package.

Each package derives its own exceptions from one of these families:

- ValidationFailure: rejected synchronously, never retried automatically.
- ContentionError: raised after internal retries ran out; safe to retry.
- StoreUnavailable: the backing store could not be reached in time; safe to retry.
- IntegrityFailure: tamper or corruption signal; never auto-corrected.
- BusinessRuleRejection: a resource rule said no (stock, refills, limits).
"""


class MedcoreError(Exception):
    """Base exception for all medcore errors."""

    retryable = False


class ValidationFailure(MedcoreError):
    """Request is invalid for the current state of the entity."""
    pass


class ContentionError(MedcoreError):
    """Concurrent writers kept colliding; the caller may retry."""

    retryable = True


class StoreUnavailable(MedcoreError):
    """Backing store unreachable or timed out; the caller may retry."""

    retryable = True


class IntegrityFailure(MedcoreError):
    """Stored data failed an integrity check and needs manual investigation."""
    pass


class BusinessRuleRejection(MedcoreError):
    """A business rule rejected the request (not a system failure)."""
    pass


class StaleVersionError(ContentionError):
    """Raised when a compare-and-swap write finds a newer row version."""

    def __init__(self, model_name: str, pk, expected_version: int):
        self.model_name = model_name
        self.pk = pk
        self.expected_version = expected_version
        super().__init__(
            f"{model_name} {pk} changed since version {expected_version} was read"
        )
