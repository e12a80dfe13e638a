"""Sequence services for atomic document-number allocation."""

import logging
import re
from datetime import date

from django.db import (
    DatabaseError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    connection,
    transaction,
)
from django.db.models import F
from django.utils import timezone

from medcore_basemodels.concurrency import (
    apply_lock_timeout,
    get_lock_timeout_ms,
    is_lock_contention,
    sleep_before_retry,
)
from medcore_basemodels.utils import as_date
from medcore_sequence.conf import get_setting
from medcore_sequence.exceptions import (
    AllocationExhausted,
    AllocatorUnavailable,
    InvalidDocumentNumber,
    InvalidPrefix,
)
from medcore_sequence.models import SequencePartition

logger = logging.getLogger(__name__)

PREFIX_RE = re.compile(r'^[A-Z]{1,10}$')
NUMBER_RE = re.compile(r'^(?P<prefix>[A-Z]{1,10}?)(?P<date>\d{6})(?P<seq>\d{4,})$')


def _normalize_prefix(prefix: str) -> str:
    normalized = (prefix or '').strip().upper()
    if not PREFIX_RE.match(normalized):
        raise InvalidPrefix(prefix)
    return normalized


def partition_key(prefix: str, on_date: date) -> str:
    """Return the partition key for a prefix and date, e.g. 'APT250601'."""
    return f"{_normalize_prefix(prefix)}{on_date:%y%m%d}"


def format_document_number(prefix: str, on_date: date, sequence: int) -> str:
    """
    Format a document number.

    The pad width is a minimum: a partition that passes 9999 keeps
    issuing unique, longer numbers rather than wrapping.

    Examples:
        format_document_number('APT', date(2025, 6, 1), 1) -> "APT2506010001"
    """
    pad_width = get_setting('PAD_WIDTH', 4)
    return f"{partition_key(prefix, on_date)}{str(sequence).zfill(pad_width)}"


def parse_document_number(value: str) -> tuple[str, date, int]:
    """
    Split a document number into (prefix, date, sequence).

    Raises:
        InvalidDocumentNumber: If the value is not a well-formed number
    """
    match = NUMBER_RE.match(value or '')
    if not match:
        raise InvalidDocumentNumber(value)

    raw_date = match.group('date')
    try:
        on_date = date(2000 + int(raw_date[:2]), int(raw_date[2:4]), int(raw_date[4:]))
    except ValueError:
        raise InvalidDocumentNumber(value)

    return match.group('prefix'), on_date, int(match.group('seq'))


def _increment(key: str, prefix: str, on_date: date) -> int:
    """Bump the partition counter in one transaction and return the new value.

    The UPDATE takes the row's write lock before anything is read, so
    concurrent callers for one partition are serialized by the database.
    """
    with transaction.atomic():
        apply_lock_timeout(connection, get_lock_timeout_ms())

        updated = SequencePartition.objects.filter(partition=key).update(
            current_value=F('current_value') + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            # First number of the day; a concurrent insert raises IntegrityError
            SequencePartition.objects.create(
                partition=key,
                prefix=prefix,
                partition_date=on_date,
                current_value=1,
            )
            return 1

        return SequencePartition.objects.filter(partition=key).values_list(
            'current_value', flat=True
        ).get()


def allocate(prefix: str, on_date=None) -> str:
    """
    Allocate the next document number in the prefix+date partition.

    Safe under concurrent callers: every caller for a partition receives a
    distinct sequence value, and values are gap-free as long as the
    enclosing transaction commits.

    Args:
        prefix: Document prefix, e.g. 'APT'
        on_date: Partition date (date, aware datetime, or None for today)

    Returns:
        The document number, e.g. "APT2506010001"

    Raises:
        InvalidPrefix: If prefix is not 1-10 letters
        AllocationExhausted: If every attempt collided with another writer
        AllocatorUnavailable: If the counter store is unreachable or timed out
    """
    prefix = _normalize_prefix(prefix)
    on_date = as_date(on_date)
    key = partition_key(prefix, on_date)

    attempts = get_setting('MAX_ATTEMPTS', 5)
    backoff = get_setting('BACKOFF_SECONDS', 0.02)

    for attempt in range(attempts):
        try:
            value = _increment(key, prefix, on_date)
        except IntegrityError:
            reason = "partition created concurrently"
        except OperationalError as exc:
            if not is_lock_contention(exc):
                logger.error("Sequence store unavailable for %s: %s", key, exc)
                raise AllocatorUnavailable(key, str(exc)) from exc
            reason = str(exc)
        except (InterfaceError, DatabaseError) as exc:
            logger.error("Sequence store unavailable for %s: %s", key, exc)
            raise AllocatorUnavailable(key, str(exc)) from exc
        else:
            number = format_document_number(prefix, on_date, value)
            logger.info("Allocated document number %s", number)
            return number

        logger.warning(
            "Allocation attempt %d/%d for %s collided: %s",
            attempt + 1, attempts, key, reason,
        )
        if attempt + 1 < attempts:
            sleep_before_retry(attempt, backoff)

    raise AllocationExhausted(key, attempts)


def current_value(prefix: str, on_date=None) -> int:
    """Return the high-water mark for a partition (0 if nothing issued)."""
    key = partition_key(prefix, as_date(on_date))
    value = SequencePartition.objects.filter(partition=key).values_list(
        'current_value', flat=True
    ).first()
    return value or 0
