"""Exceptions for medcore-memberships."""

from medcore_basemodels.exceptions import BusinessRuleRejection, MedcoreError, ValidationFailure


class MembershipError(MedcoreError):
    """Base exception for membership errors."""
    pass


class InvalidMembershipRequest(MembershipError, ValidationFailure):
    """Raised for malformed plans or family member changes."""
    pass


class MembershipNotActive(MembershipError, ValidationFailure):
    """Raised when using benefits of a membership that is not active."""

    def __init__(self, number: str, status: str):
        self.number = number
        self.status = status
        super().__init__(f"Membership {number} is not active (status '{status}')")


class UnknownBenefit(MembershipError, ValidationFailure):
    """Raised when the plan has no such benefit."""

    def __init__(self, number: str, benefit_type: str):
        self.number = number
        self.benefit_type = benefit_type
        super().__init__(f"Membership {number} has no benefit '{benefit_type}'")


class BenefitLimitExceeded(MembershipError, BusinessRuleRejection):
    """Raised when a benefit's monthly or lifetime limit is used up."""

    def __init__(self, number: str, benefit_type: str, limit_kind: str, limit: int):
        self.number = number
        self.benefit_type = benefit_type
        self.limit_kind = limit_kind
        self.limit = limit
        super().__init__(
            f"Membership {number}: {benefit_type} {limit_kind} limit of {limit} reached"
        )


class FamilyLimitExceeded(MembershipError, BusinessRuleRejection):
    """Raised when adding more members than the plan allows."""

    def __init__(self, number: str, limit: int):
        self.number = number
        self.limit = limit
        super().__init__(f"Membership {number} allows at most {limit} members")
