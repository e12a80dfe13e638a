"""Configuration helpers for medcore-timeline.

Settings (all optional):
    MEDCORE_TIMELINE_DUPLICATE_WINDOW_SECONDS = 5
    MEDCORE_TIMELINE_MAX_ATTEMPTS = 3
    MEDCORE_TIMELINE_BACKOFF_SECONDS = 0.01
    MEDCORE_TIMELINE_TABLES = {
        "appointment": {
            "initial_state": "created",
            "transitions": {"created": ["confirmed", "cancelled"], ...},
            "terminal_states": ["completed", "cancelled"],
        },
    }
"""

from django.conf import settings


def get_setting(name: str, default=None):
    """Get a setting with MEDCORE_TIMELINE_ prefix."""
    return getattr(settings, f"MEDCORE_TIMELINE_{name}", default)
