"""Inventory ledger services.

Every lot mutation goes through `_mutate`: read the lot, compute the new
counters, write them with a lock_version compare-and-swap, and retry on a
lost race up to MEDCORE_INVENTORY_MAX_ATTEMPTS before raising
LotContention. Quantities are never clamped; a mutation that would break
a counter is rejected.
"""

import logging

from django.db import IntegrityError, OperationalError, connection, transaction
from django.db.models import Sum
from django.utils import timezone

from medcore_basemodels.concurrency import (
    apply_lock_timeout,
    get_lock_timeout_ms,
    is_lock_contention,
    sleep_before_retry,
)
from medcore_basemodels.exceptions import StaleVersionError
from medcore_basemodels.utils import actor_ref, as_date

from .conf import get_setting
from .exceptions import BatchMismatch, InvalidQuantity, LotContention, LotNotSellable
from .models import InventoryLot
from .status import UNSELLABLE, StockLevels, compute_status, derive_status

logger = logging.getLogger(__name__)


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(quantity)
    return quantity


def _lot_id(lot):
    return getattr(lot, 'pk', lot)


def _mutate(
    lot,
    kind: str,
    quantity: int,
    deltas: dict,
    *,
    actor=None,
    reference: str = '',
    note: str = '',
    require_sellable: bool = False,
    extra: dict = None,
    now=None,
) -> InventoryLot:
    lot_id = _lot_id(lot)
    attempts = get_setting('MAX_ATTEMPTS', 5)
    backoff = get_setting('BACKOFF_SECONDS', 0.01)
    extra = extra or {}

    for attempt in range(attempts):
        try:
            # A locked read counts as a collision like a lost write
            current = InventoryLot.objects.get(pk=lot_id)

            if require_sellable:
                status = derive_status(current, now)
                if status in UNSELLABLE:
                    raise LotNotSellable(lot_id, status)

            levels = StockLevels.of(current).apply(lot_id, **deltas)
            fields = levels.as_fields()
            fields.update(extra)
            fields['status'] = compute_status(
                expiry_date=current.expiry_date,
                available_quantity=levels.available,
                reorder_level=current.reorder_level,
                expiry_alert_days=current.expiry_alert_days,
                is_recalled=fields.get('is_recalled', current.is_recalled),
                today=as_date(now),
            )
            fields['transaction_history'] = list(current.transaction_history) + [{
                'type': kind,
                'quantity': quantity,
                'at': (now or timezone.now()).isoformat(),
                'reference': reference,
                'actor_id': actor_ref(actor),
                'note': note,
            }]

            with transaction.atomic():
                apply_lock_timeout(connection, get_lock_timeout_ms())
                current.cas_update(**fields)
        except StaleVersionError:
            reason = "version conflict"
        except OperationalError as exc:
            if not is_lock_contention(exc):
                raise
            reason = str(exc)
        else:
            logger.info(
                "Lot %s %s %d (available %d)",
                lot_id, kind, quantity, current.available_quantity,
            )
            if isinstance(lot, InventoryLot):
                lot.refresh_from_db()
            return current

        logger.warning(
            "Lot %s %s attempt %d/%d collided: %s",
            lot_id, kind, attempt + 1, attempts, reason,
        )
        if attempt + 1 < attempts:
            sleep_before_retry(attempt, backoff)

    raise LotContention(lot_id, attempts)


def receive_stock(
    pharmacy_id: str,
    product_ref: str,
    batch_number: str,
    expiry_date,
    quantity: int,
    *,
    manufacturing_date=None,
    reorder_level: int = None,
    expiry_alert_days: int = None,
    actor=None,
    reference: str = '',
    now=None,
) -> InventoryLot:
    """
    Receive purchased stock into a batch, creating the lot on first receipt.

    Raises:
        InvalidQuantity: If quantity is not positive
        BatchMismatch: If the batch exists with a different expiry date
    """
    _check_quantity(quantity)
    key = {'pharmacy_id': pharmacy_id, 'product_ref': product_ref, 'batch_number': batch_number}

    lot = InventoryLot.objects.filter(**key).first()
    if lot is None:
        if reorder_level is None:
            reorder_level = get_setting('REORDER_LEVEL', 10)
        if expiry_alert_days is None:
            expiry_alert_days = get_setting('EXPIRY_ALERT_DAYS', 90)
        try:
            with transaction.atomic():
                lot = InventoryLot.objects.create(
                    **key,
                    expiry_date=expiry_date,
                    manufacturing_date=manufacturing_date,
                    reorder_level=reorder_level,
                    expiry_alert_days=expiry_alert_days,
                    status=compute_status(
                        expiry_date, 0, reorder_level, expiry_alert_days, today=as_date(now),
                    ),
                )
        except IntegrityError:
            # Another receipt created the batch first
            lot = InventoryLot.objects.get(**key)

    if lot.expiry_date != expiry_date:
        raise BatchMismatch(
            batch_number,
            f"expiry {expiry_date} does not match stored {lot.expiry_date}",
        )

    return _mutate(
        lot, 'purchase', quantity, {'quantity': quantity},
        actor=actor, reference=reference, now=now,
    )


def reserve(lot, quantity: int, *, actor=None, reference: str = '', now=None) -> InventoryLot:
    """
    Move available units into reserved.

    Raises:
        LotNotSellable: If the lot is expired or recalled
        InsufficientStock: If fewer than `quantity` units are available
    """
    _check_quantity(quantity)
    return _mutate(
        lot, 'reserve', quantity, {'reserved': quantity},
        actor=actor, reference=reference, require_sellable=True, now=now,
    )


def release(lot, quantity: int, *, actor=None, reference: str = '', now=None) -> InventoryLot:
    """Return reserved units to available (compensation for reserve)."""
    _check_quantity(quantity)
    return _mutate(
        lot, 'release', quantity, {'reserved': -quantity},
        actor=actor, reference=reference, now=now,
    )


def commit_reservation(lot, quantity: int, *, actor=None, reference: str = '', now=None) -> InventoryLot:
    """Turn reserved units into a permanent deduction (a sale)."""
    _check_quantity(quantity)
    return _mutate(
        lot, 'sale', quantity, {'reserved': -quantity, 'quantity': -quantity},
        actor=actor, reference=reference, now=now,
    )


def record_damage(lot, quantity: int, *, actor=None, note: str = '', now=None) -> InventoryLot:
    """Hold available units back as damaged."""
    _check_quantity(quantity)
    return _mutate(
        lot, 'damage', quantity, {'damaged': quantity},
        actor=actor, note=note, now=now,
    )


def return_to_supplier(
    lot,
    quantity: int,
    *,
    from_damaged: bool = False,
    actor=None,
    reference: str = '',
    now=None,
) -> InventoryLot:
    """Ship units back to the supplier, from available or from damaged stock."""
    _check_quantity(quantity)
    deltas = {'quantity': -quantity}
    if from_damaged:
        deltas['damaged'] = -quantity
    return _mutate(
        lot, 'supplier_return', quantity, deltas,
        actor=actor, reference=reference, now=now,
    )


def restock_return(lot, quantity: int, *, actor=None, reference: str = '', note: str = '', now=None) -> InventoryLot:
    """Take back a patient return; units are held until released or written off."""
    _check_quantity(quantity)
    return _mutate(
        lot, 'return', quantity, {'quantity': quantity, 'returned': quantity},
        actor=actor, reference=reference, note=note, now=now,
    )


def release_returned(lot, quantity: int, *, actor=None, now=None) -> InventoryLot:
    """Put inspected returned units back into available stock."""
    _check_quantity(quantity)
    return _mutate(
        lot, 'restock', quantity, {'returned': -quantity},
        actor=actor, now=now,
    )


def write_off_returned(lot, quantity: int, *, actor=None, note: str = '', now=None) -> InventoryLot:
    """Destroy returned units that failed inspection."""
    _check_quantity(quantity)
    return _mutate(
        lot, 'write_off', quantity, {'returned': -quantity, 'quantity': -quantity},
        actor=actor, note=note, now=now,
    )


def adjust(lot, delta: int, *, actor=None, note: str = '', now=None) -> InventoryLot:
    """Stock-take correction of the physical quantity (delta may be negative)."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InvalidQuantity(delta)
    return _mutate(
        lot, 'adjustment', delta, {'quantity': delta},
        actor=actor, note=note, now=now,
    )


def recall(lot, reason: str, *, actor=None, now=None) -> InventoryLot:
    """Mark a lot recalled; it stops being sellable immediately."""
    return _mutate(
        lot, 'recall', 0, {},
        actor=actor, note=reason,
        extra={'is_recalled': True, 'recall_reason': reason},
        now=now,
    )


def fefo_lots(pharmacy_id: str, product_ref: str, now=None):
    """
    Sellable lots for a product at a pharmacy, first-expiring first.

    Only lots with available stock, an expiry date after today and no
    recall are returned. Ties break on receipt order, then batch number.
    """
    return InventoryLot.objects.filter(
        pharmacy_id=pharmacy_id,
        product_ref=product_ref,
        available_quantity__gt=0,
        expiry_date__gt=as_date(now),
        is_recalled=False,
    ).order_by('expiry_date', 'created_at', 'batch_number')


def available_stock(pharmacy_id: str, product_ref: str, now=None) -> int:
    """Total sellable units of a product at a pharmacy."""
    total = fefo_lots(pharmacy_id, product_ref, now).aggregate(
        total=Sum('available_quantity'),
    )['total']
    return total or 0


def refresh_statuses(now=None, pharmacy_id: str = None) -> int:
    """
    Recompute the cached status of every lot; returns how many changed.

    Only the display cache is written, so lock_version is left alone.
    """
    lots = InventoryLot.objects.all()
    if pharmacy_id:
        lots = lots.filter(pharmacy_id=pharmacy_id)

    changed = 0
    for lot in lots.iterator():
        status = derive_status(lot, now)
        if status != lot.status:
            InventoryLot.objects.filter(pk=lot.pk).update(status=status)
            changed += 1

    if changed:
        logger.info("Refreshed status of %d lots", changed)
    return changed
