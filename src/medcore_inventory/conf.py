"""Configuration helpers for medcore-inventory.

Settings (all optional):
    MEDCORE_INVENTORY_EXPIRY_ALERT_DAYS = 90    # near_expiry window for new lots
    MEDCORE_INVENTORY_REORDER_LEVEL = 10        # low_stock threshold for new lots
    MEDCORE_INVENTORY_MAX_ATTEMPTS = 5          # CAS attempts per mutation
    MEDCORE_INVENTORY_BACKOFF_SECONDS = 0.01    # base for exponential backoff
"""

from django.conf import settings


def get_setting(name: str, default=None):
    """Get a setting with MEDCORE_INVENTORY_ prefix."""
    return getattr(settings, f"MEDCORE_INVENTORY_{name}", default)
