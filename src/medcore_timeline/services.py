"""Service functions for the timeline ledger.

Provides:
- start: write the creation entry on a new entity
- append: validate and append a status transition
- append_by_id: append by primary key (for request handlers)
- current_status / allowed_transitions / entries: read helpers
"""

import logging
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

from django.db import OperationalError, connection, transaction
from django.utils import timezone

from medcore_basemodels.concurrency import (
    apply_lock_timeout,
    get_lock_timeout_ms,
    is_lock_contention,
    sleep_before_retry,
)
from medcore_basemodels.exceptions import StaleVersionError
from medcore_basemodels.utils import actor_ref

from .conf import get_setting
from .exceptions import (
    InvalidTransition,
    TimelineAlreadyStarted,
    TimelineContention,
    TimelineNotStarted,
    UnknownEntityType,
)
from .models import TimelineEntry
from .tables import TransitionTable, get_table

logger = logging.getLogger(__name__)


def _table_for(entity) -> TransitionTable:
    entity_type = getattr(entity, 'timeline_entity_type', None)
    if not entity_type:
        raise UnknownEntityType(type(entity).__name__)
    return get_table(entity_type)


def _as_amount(amount):
    if amount is None:
        return None
    return amount if isinstance(amount, Decimal) else Decimal(str(amount))


def start(entity, note: str = '', actor=None, amount=None, now=None) -> TimelineEntry:
    """
    Write the creation entry on an entity that has not been saved yet.

    The first entry is always the table's initial status. The caller saves
    the entity, so number allocation and the first entry land in one INSERT.

    Raises:
        TimelineAlreadyStarted: If the entity already has entries
    """
    table = _table_for(entity)
    if entity.timeline:
        raise TimelineAlreadyStarted(
            f"{table.entity_type} {entity.pk} already has a timeline"
        )

    entry = TimelineEntry(
        status=table.initial_state,
        timestamp=now or timezone.now(),
        note=note,
        actor_id=actor_ref(actor),
        amount=_as_amount(amount),
    )
    entity.timeline = [entry.to_dict()]
    entity.status = entry.status
    return entry


def _find_duplicate(entries, status, amount, reference, moment):
    """The latest entry, if it repeats this append within the window."""
    window = timedelta(seconds=get_setting('DUPLICATE_WINDOW_SECONDS', 5))
    entry = TimelineEntry.from_dict(entries[-1])
    if moment - entry.timestamp > window:
        return None
    if (
        entry.status == status
        and entry.amount == amount
        and entry.reference == reference
    ):
        return replace(entry, replayed=True)
    return None


def _sync(entity, fresh, changes) -> None:
    entity.timeline = fresh.timeline
    entity.status = fresh.status
    entity.lock_version = fresh.lock_version
    if hasattr(fresh, 'updated_at'):
        entity.updated_at = fresh.updated_at
    for name in changes:
        setattr(entity, name, getattr(fresh, name))


def append(
    entity,
    status: str,
    note: str = '',
    actor=None,
    *,
    amount=None,
    reference: str = '',
    dedupe: bool = True,
    changes: dict = None,
    now=None,
) -> TimelineEntry:
    """
    Append a status transition to an entity's timeline.

    The row is locked and re-read, the transition is checked against the
    entity type's table, and the new array is written with a lock_version
    compare-and-swap. The in-memory entity is refreshed on return.

    An append matching an entry recorded within the duplicate window
    (same status, amount and reference) returns that entry instead, so
    redelivered requests are harmless.

    Args:
        entity: A saved TimelineModel instance
        status: Target status
        note: Free-text note
        actor: User instance, id or None for system actions
        amount: Amount involved (payments)
        reference: Caller reference recorded on the entry
        dedupe: Set False for repeatable transitions such as partial refunds
        changes: Extra field updates written in the same UPDATE; they were
            computed from `entity`, so a concurrent write fails the call

    Returns:
        The appended TimelineEntry, or the matching earlier one with
        `replayed` set; callers skip one-time side effects on a replay

    Raises:
        InvalidTransition: If status is not reachable from the current status
        TimelineNotStarted: If the entity has no creation entry
        StaleVersionError: If changes were passed and the row moved on
        TimelineContention: If concurrent writers kept winning
    """
    table = _table_for(entity)
    model = type(entity)
    amount = _as_amount(amount)
    changes = changes or {}
    attempts = get_setting('MAX_ATTEMPTS', 3)

    for attempt in range(attempts):
        try:
            with transaction.atomic():
                apply_lock_timeout(connection, get_lock_timeout_ms())
                fresh = model._base_manager.select_for_update().get(pk=entity.pk)

                if changes and fresh.lock_version != entity.lock_version:
                    raise StaleVersionError(model.__name__, entity.pk, entity.lock_version)

                entries = fresh.timeline or []
                if not entries:
                    raise TimelineNotStarted(
                        f"{table.entity_type} {entity.pk} has no creation entry"
                    )

                moment = now or timezone.now()
                if dedupe:
                    duplicate = _find_duplicate(entries, status, amount, reference, moment)
                    if duplicate is not None:
                        logger.info(
                            "Suppressed duplicate %s on %s %s",
                            status, table.entity_type, entity.pk,
                        )
                        _sync(entity, fresh, changes)
                        return duplicate

                current = entries[-1]['status']
                if status not in table.allowed_from(current):
                    raise InvalidTransition(table.entity_type, current, status)

                entry = TimelineEntry(
                    status=status,
                    timestamp=moment,
                    note=note,
                    actor_id=actor_ref(actor),
                    amount=amount,
                    reference=reference,
                )
                fresh.cas_update(
                    timeline=entries + [entry.to_dict()],
                    status=status,
                    **changes,
                )
        except StaleVersionError:
            if changes:
                raise
            reason = "version conflict"
        except OperationalError as exc:
            if not is_lock_contention(exc):
                raise
            reason = str(exc)
        else:
            _sync(entity, fresh, changes)
            logger.info(
                "%s %s: %s -> %s", table.entity_type, entity.pk, current, status,
            )
            return entry

        logger.warning(
            "Timeline append %d/%d on %s %s collided: %s",
            attempt + 1, attempts, table.entity_type, entity.pk, reason,
        )
        if attempt + 1 < attempts:
            sleep_before_retry(attempt, get_setting('BACKOFF_SECONDS', 0.01))

    raise TimelineContention(table.entity_type, entity.pk, attempts)


def append_by_id(model, entity_id, status: str, note: str = '', actor=None, **kwargs) -> TimelineEntry:
    """Append to the entity of `model` with primary key `entity_id`."""
    entity = model._default_manager.get(pk=entity_id)
    return append(entity, status, note, actor, **kwargs)


def current_status(entity):
    """Status of the last timeline entry (None before start())."""
    return entity.current_status


def allowed_transitions(entity) -> list[str]:
    """Statuses that may be appended next."""
    status = entity.current_status
    if status is None:
        return []
    return _table_for(entity).allowed_from(status)


def entries(entity) -> list[TimelineEntry]:
    return entity.timeline_entries
