"""Dispensing reconciler.

A dispense runs in three phases:

1. Plan: status, expiry, integrity, discontinued-line and refill-ceiling
   checks, then FEFO lot selection with approved substitutes. Nothing is
   written, so the caller may abandon the request here.
2. Reserve: each allocation reserves units on its lot. Losing a race
   releases every earlier reservation and re-plans.
3. Commit: one transaction locks the prescription, re-checks the ceilings,
   turns reservations into deductions and writes one record per
   (line, lot). Any failure releases the reservations.

With partial fulfillment off (the default) a request either dispenses
every line in full or changes nothing.
"""

import logging
import uuid
from dataclasses import dataclass, field

from django.db import DatabaseError, transaction
from django.db.models import Sum
from django.utils import timezone

from medcore_basemodels.exceptions import MedcoreError
from medcore_basemodels.utils import actor_ref
from medcore_erx.exceptions import InvalidPrescriptionState, PrescriptionExpired, UnknownLine
from medcore_erx.models import Prescription, PrescriptionStatus
from medcore_erx.services import ensure_integrity, expire, is_expired, mark_dispensed
from medcore_inventory.exceptions import InsufficientStock, LotContention, LotNotSellable
from medcore_inventory.services import commit_reservation, release, reserve, restock_return

from .conf import get_setting
from .exceptions import (
    CompensationFailed,
    DispenseContention,
    InvalidDispenseRequest,
    LineDiscontinued,
    ReturnExceedsDispensed,
)
from .models import DispensingRecord
from .planning import (
    Allocation,
    LineFulfillment,
    check_ceilings,
    dispensed_totals,
    parse_requests,
    plan,
)

logger = logging.getLogger(__name__)

DISPENSABLE = (PrescriptionStatus.SIGNED, PrescriptionStatus.DISPENSED)


@dataclass
class DispenseResult:
    """Records written plus a per-line fulfillment report."""

    records: list = field(default_factory=list)
    lines: list = field(default_factory=list)
    prescription_status: str = ''
    replayed: bool = False

    @property
    def partial(self) -> bool:
        return any(line.shortfall for line in self.lines)


def _check_dispensable(prescription, now) -> None:
    if prescription.status == PrescriptionStatus.EXPIRED or (
        prescription.status in DISPENSABLE and is_expired(prescription, now)
    ):
        raise PrescriptionExpired(prescription.pk, prescription.expires_at)
    if prescription.status not in DISPENSABLE:
        raise InvalidPrescriptionState(prescription.pk, prescription.status, "dispense")
    ensure_integrity(prescription)


def _replay(prescription, order_ref: str):
    records = list(DispensingRecord.objects.filter(
        prescription=prescription,
        order_ref=order_ref,
        kind=DispensingRecord.Kind.DISPENSE,
    ))
    if not records:
        return None

    lines = {}
    for record in records:
        line = lines.setdefault(record.line_id, LineFulfillment(
            line_id=record.line_id,
            product_ref=record.prescribed_product_ref,
            requested=0,
        ))
        line.requested += record.quantity_dispensed
        line.allocations.append(Allocation(
            lot_id=record.lot_id,
            product_ref=record.product_ref,
            batch_number=record.batch_number,
            expiry_date=record.expiry_date,
            quantity=record.quantity_dispensed,
            substituted=bool(record.substituted_product_ref),
        ))

    prescription.refresh_from_db(fields=['status'])
    return DispenseResult(
        records=records,
        lines=list(lines.values()),
        prescription_status=prescription.status,
        replayed=True,
    )


def _release_all(prescription_id, reserved, reference: str, actor) -> None:
    """Compensate: release every reservation made for this request."""
    outstanding = []
    for allocation in reversed(reserved):
        try:
            release(allocation.lot_id, allocation.quantity, actor=actor, reference=reference)
        except (MedcoreError, DatabaseError) as exc:
            logger.error(
                "Could not release %d units on lot %s for %s: %s",
                allocation.quantity, allocation.lot_id, reference, exc,
            )
            outstanding.append(allocation)

    if outstanding:
        raise CompensationFailed(prescription_id, outstanding)
    if reserved:
        logger.warning(
            "Released %d reservations for prescription %s (%s)",
            len(reserved), prescription_id, reference,
        )


def _reserve(prescription_id, fulfillments, reference: str, actor, now) -> list:
    reserved = []
    try:
        for fulfillment in fulfillments:
            for allocation in fulfillment.allocations:
                reserve(
                    allocation.lot_id, allocation.quantity,
                    actor=actor, reference=reference, now=now,
                )
                reserved.append(allocation)
    except Exception:
        _release_all(prescription_id, reserved, reference, actor)
        raise
    return reserved


def _commit(locked, pharmacy_id, fulfillments, *, reference, order_ref, actor, now) -> DispenseResult:
    _check_dispensable(locked, now)

    for fulfillment in fulfillments:
        line = locked.get_line(fulfillment.line_id)
        if line is None:
            raise UnknownLine(locked.pk, fulfillment.line_id)
        if line.discontinued:
            raise LineDiscontinued(line.line_id)
    check_ceilings(locked, fulfillments)

    records = []
    dispensed_by = actor_ref(actor)
    for fulfillment in fulfillments:
        for allocation in fulfillment.allocations:
            commit_reservation(
                allocation.lot_id, allocation.quantity,
                actor=actor, reference=reference, now=now,
            )
            records.append(DispensingRecord.objects.create(
                prescription=locked,
                prescription_version=locked.version,
                line_id=fulfillment.line_id,
                lot_id=allocation.lot_id,
                pharmacy_id=pharmacy_id,
                product_ref=allocation.product_ref,
                prescribed_product_ref=fulfillment.product_ref,
                substituted_product_ref=allocation.product_ref if allocation.substituted else '',
                substitution_reason=(
                    "prescribed product unavailable" if allocation.substituted else ''
                ),
                quantity_dispensed=allocation.quantity,
                order_ref=order_ref,
                batch_number=allocation.batch_number,
                expiry_date=allocation.expiry_date,
                dispensed_by=dispensed_by,
                dispensed_at=now,
            ))

    totals = dispensed_totals(locked)
    active = [line for line in locked.line_items if not line.discontinued]
    if active and all(totals.get(line.line_id, 0) > 0 for line in active):
        mark_dispensed(locked, now)

    return DispenseResult(
        records=records,
        lines=fulfillments,
        prescription_status=locked.status,
    )


def dispense(
    prescription_id,
    pharmacy_id: str,
    requested_items,
    *,
    actor=None,
    order_ref: str = '',
    allow_partial: bool = None,
    now=None,
) -> DispenseResult:
    """
    Dispense requested lines of a signed prescription from a pharmacy's lots.

    Args:
        prescription_id: Prescription pk (or instance)
        pharmacy_id: Pharmacy whose lots are used
        requested_items: [{'line_id': ..., 'quantity': n}, ...]; a
            'product_ref' may stand in for line_id, and quantity defaults
            to the prescribed quantity
        actor: Dispensing pharmacist (user, id or None)
        order_ref: Makes redelivery of the same order return the original result
        allow_partial: Allow short lines; defaults to MEDCORE_DISPENSING_ALLOW_PARTIAL
        now: Clock override

    Returns:
        DispenseResult with one record per (line, lot)

    Raises:
        PrescriptionExpired: If past expires_at (the prescription is expired)
        InvalidPrescriptionState: If not signed or dispensed
        IntegrityViolation: If the prescription fails verification
        LineDiscontinued / UnknownLine: For bad lines
        RefillLimitExceeded: If a line would pass quantity x (1 + refills)
        LotUnavailable: If stock is short and partial fulfillment is off
        DispenseContention: If reservations kept losing races
        CompensationFailed: If a failure could not be rolled back
    """
    if allow_partial is None:
        allow_partial = get_setting('ALLOW_PARTIAL', False)
    now = now or timezone.now()
    prescription = Prescription.objects.get(pk=getattr(prescription_id, 'pk', prescription_id))

    if order_ref:
        replay = _replay(prescription, order_ref)
        if replay is not None:
            logger.info("Dispense %s for prescription %s replayed", order_ref, prescription.pk)
            return replay

    if prescription.status in DISPENSABLE and is_expired(prescription, now):
        expire(prescription, now)
    _check_dispensable(prescription, now)

    requests = parse_requests(prescription, requested_items)
    reference = order_ref or f"dispense:{uuid.uuid4().hex}"
    attempts = get_setting('MAX_PLAN_ATTEMPTS', 3)

    for attempt in range(attempts):
        fulfillments = plan(prescription, pharmacy_id, requests, allow_partial=allow_partial, now=now)
        try:
            reserved = _reserve(prescription.pk, fulfillments, reference, actor, now)
        except (InsufficientStock, LotNotSellable, LotContention) as exc:
            logger.warning(
                "Dispense plan %d/%d for prescription %s lost a reservation: %s",
                attempt + 1, attempts, prescription.pk, exc,
            )
            continue
        break
    else:
        raise DispenseContention(prescription.pk, attempts)

    duplicate = False
    try:
        with transaction.atomic():
            locked = Prescription.objects.select_for_update().get(pk=prescription.pk)
            if order_ref and DispensingRecord.objects.filter(
                prescription=locked, order_ref=order_ref,
            ).exists():
                duplicate = True
            else:
                result = _commit(
                    locked, pharmacy_id, fulfillments,
                    reference=reference, order_ref=order_ref, actor=actor, now=now,
                )
    except Exception:
        _release_all(prescription.pk, reserved, reference, actor)
        raise

    if duplicate:
        _release_all(prescription.pk, reserved, reference, actor)
        return _replay(prescription, order_ref)

    logger.info(
        "Dispensed %d records for prescription %s at %s (%s)%s",
        len(result.records), prescription.pk, pharmacy_id, reference,
        " partial" if result.partial else "",
    )
    return result


@transaction.atomic
def return_dispensed(record: DispensingRecord, quantity: int, actor=None, reason: str = '', now=None) -> DispensingRecord:
    """
    Record a patient return against a dispensing record.

    The returned units go back to the lot as held returned stock; the
    original record stays and the new 'return' record supersedes it.

    Raises:
        InvalidDispenseRequest: If record is itself a return or quantity is bad
        ReturnExceedsDispensed: If more than the unreturned balance is returned
    """
    if record.kind != DispensingRecord.Kind.DISPENSE:
        raise InvalidDispenseRequest("Only dispense records can be returned")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidDispenseRequest(f"Quantity must be a positive integer, got {quantity!r}")

    now = now or timezone.now()
    # Serialize returns per prescription
    Prescription.objects.select_for_update().get(pk=record.prescription_id)

    returned = record.returns.aggregate(total=Sum('quantity_dispensed'))['total'] or 0
    returnable = record.quantity_dispensed - returned
    if quantity > returnable:
        raise ReturnExceedsDispensed(record.pk, quantity, returnable)

    restock_return(
        record.lot_id, quantity,
        actor=actor, reference=str(record.pk), note=reason, now=now,
    )
    returned_record = DispensingRecord.objects.create(
        prescription_id=record.prescription_id,
        prescription_version=record.prescription_version,
        line_id=record.line_id,
        lot_id=record.lot_id,
        pharmacy_id=record.pharmacy_id,
        product_ref=record.product_ref,
        prescribed_product_ref=record.prescribed_product_ref,
        substituted_product_ref=record.substituted_product_ref,
        quantity_dispensed=quantity,
        kind=DispensingRecord.Kind.RETURN,
        supersedes=record,
        order_ref=record.order_ref,
        batch_number=record.batch_number,
        expiry_date=record.expiry_date,
        dispensed_by=actor_ref(actor),
        dispensed_at=now,
        note=reason,
    )

    logger.info(
        "Returned %d of record %s to lot %s", quantity, record.pk, record.lot_id,
    )
    return returned_record
