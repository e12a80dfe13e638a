"""
medcore-memberships: Numbered memberships with benefit-usage limits.

Provides:
- Membership: MEM-numbered plan subscription embedding its timeline
- MembershipBenefitUsage: per-benefit counters guarded by monthly and
  lifetime limits
- use_benefit(): atomic guarded increment
"""

__version__ = "0.1.0"
