"""Configuration helpers for medcore-sequence.

Settings (all optional):
    MEDCORE_SEQUENCE_MAX_ATTEMPTS = 5         # collisions tolerated per allocation
    MEDCORE_SEQUENCE_BACKOFF_SECONDS = 0.02   # base for exponential backoff
    MEDCORE_SEQUENCE_PAD_WIDTH = 4            # minimum digits in the sequence part
"""

from django.conf import settings


def get_setting(name: str, default=None):
    """Get a setting with MEDCORE_SEQUENCE_ prefix."""
    return getattr(settings, f"MEDCORE_SEQUENCE_{name}", default)
