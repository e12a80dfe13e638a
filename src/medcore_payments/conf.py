"""Configuration helpers for medcore-payments.

Settings (all optional):
    MEDCORE_PAYMENTS_MAX_CAPTURE_ATTEMPTS = 3      # gateway attempts before 'failed'
    MEDCORE_PAYMENTS_RETRY_BACKOFF_SECONDS = 30    # doubles after each failure
    MEDCORE_PAYMENTS_DEFAULT_CURRENCY = "INR"
    MEDCORE_PAYMENTS_MAX_REFUND_ATTEMPTS = 5       # refund retries on concurrent writes
    MEDCORE_PAYMENTS_BACKOFF_SECONDS = 0.01        # base delay between refund retries
"""

from django.conf import settings


def get_setting(name: str, default=None):
    """Get a setting with MEDCORE_PAYMENTS_ prefix."""
    return getattr(settings, f"MEDCORE_PAYMENTS_{name}", default)
