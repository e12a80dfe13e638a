"""Configuration helpers for medcore-erx.

Settings (all optional):
    MEDCORE_ERX_VALIDITY_DAYS = 30          # expires_at = signed_at + this
    MEDCORE_ERX_SIGNING_KEY = None          # falls back to SECRET_KEY
    MEDCORE_ERX_HASH_ALGORITHM = "sha256"   # any hashlib algorithm name
"""

from django.conf import settings


def get_setting(name: str, default=None):
    """Get a setting with MEDCORE_ERX_ prefix."""
    return getattr(settings, f"MEDCORE_ERX_{name}", default)


def get_signing_key() -> str:
    return get_setting("SIGNING_KEY") or settings.SECRET_KEY
