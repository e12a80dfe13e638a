"""Contention helpers for bounded retry loops.

Used by the sequence allocator, the timeline ledger and the inventory
ledger: classify lock errors, sleep with exponential backoff between
attempts, and put a lock timeout on the current transaction so no call
waits on a row lock forever.
"""
import random
import time

from django.conf import settings
from django.db import OperationalError

LOCK_ERROR_MARKERS = (
    'database is locked',
    'database table is locked',
    'database schema is locked',
    'lock timeout',
    'could not obtain lock',
    'deadlock detected',
    'could not serialize access',
)


def is_lock_contention(exc: Exception) -> bool:
    """Return True when a database error means "someone else holds the lock"."""
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in LOCK_ERROR_MARKERS)


def backoff_delay(attempt: int, base: float) -> float:
    """Exponential backoff with jitter for the given zero-based attempt."""
    return base * (2 ** attempt) * (0.5 + random.random())


def sleep_before_retry(attempt: int, base: float) -> None:
    """Sleep before retrying; a zero base disables sleeping (tests)."""
    if base > 0:
        time.sleep(backoff_delay(attempt, base))


def apply_lock_timeout(connection, timeout_ms: int) -> None:
    """Bound lock waits for the rest of the current transaction.

    Only PostgreSQL supports a per-transaction lock timeout; SQLite relies on
    its connection-level busy timeout instead.
    """
    if not timeout_ms or connection.vendor != 'postgresql':
        return
    with connection.cursor() as cursor:
        cursor.execute(f"SET LOCAL lock_timeout = {int(timeout_ms)}")


def get_lock_timeout_ms() -> int:
    """Lock wait bound shared by every medcore writer (MEDCORE_LOCK_TIMEOUT_MS)."""
    return getattr(settings, 'MEDCORE_LOCK_TIMEOUT_MS', 2000)
