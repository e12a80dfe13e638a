"""Configuration helpers for medcore-dispensing.

Settings (all optional):
    MEDCORE_DISPENSING_ALLOW_PARTIAL = False     # allow short lines, reported in the result
    MEDCORE_DISPENSING_MAX_PLAN_ATTEMPTS = 3     # re-plans after a lost reservation race
"""

from django.conf import settings


def get_setting(name: str, default=None):
    """Get a setting with MEDCORE_DISPENSING_ prefix."""
    return getattr(settings, f"MEDCORE_DISPENSING_{name}", default)
