"""
Read-only planning for dispense requests.

Planning mutates nothing, so a caller may abandon a request at any point
before reservations start.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from django.db.models import Q, Sum

from medcore_erx.exceptions import UnknownLine
from medcore_inventory.services import fefo_lots

from .exceptions import (
    InvalidDispenseRequest,
    LineDiscontinued,
    LotUnavailable,
    RefillLimitExceeded,
)
from .models import ApprovedSubstitute, DispensingRecord


@dataclass(frozen=True)
class RequestedLine:
    line_id: str
    quantity: Optional[int] = None


@dataclass(frozen=True)
class Allocation:
    """Units of one lot planned for one line."""

    lot_id: object
    product_ref: str
    batch_number: str
    expiry_date: date
    quantity: int
    substituted: bool = False


@dataclass
class LineFulfillment:
    """What a request asked of a line and which lots cover it."""

    line_id: str
    product_ref: str
    requested: int
    allocations: list = field(default_factory=list)

    @property
    def fulfilled(self) -> int:
        return sum(a.quantity for a in self.allocations)

    @property
    def shortfall(self) -> int:
        return self.requested - self.fulfilled

    @property
    def substituted(self) -> bool:
        return any(a.substituted for a in self.allocations)


def dispensed_totals(prescription) -> dict:
    """Net dispensed quantity (dispenses minus returns) per line_id."""
    rows = DispensingRecord.objects.filter(prescription=prescription).values('line_id').annotate(
        dispensed=Sum('quantity_dispensed', filter=Q(kind=DispensingRecord.Kind.DISPENSE)),
        returned=Sum('quantity_dispensed', filter=Q(kind=DispensingRecord.Kind.RETURN)),
    )
    return {
        row['line_id']: (row['dispensed'] or 0) - (row['returned'] or 0)
        for row in rows
    }


def approved_substitutes(product_ref: str) -> list[str]:
    return list(
        ApprovedSubstitute.objects.filter(product_ref=product_ref, active=True)
        .order_by('priority', 'substitute_ref')
        .values_list('substitute_ref', flat=True)
    )


def parse_requests(prescription, requested_items) -> list[RequestedLine]:
    """
    Resolve requested items to prescription lines.

    Each item is {'line_id': ..., 'quantity': n} or {'product_ref': ...,
    'quantity': n}; quantity defaults to the line's prescribed quantity.
    """
    if not requested_items:
        raise InvalidDispenseRequest("No items requested")

    lines = prescription.line_items
    resolved = []
    seen = set()
    for item in requested_items:
        if isinstance(item, RequestedLine):
            item = {'line_id': item.line_id, 'quantity': item.quantity}
        if not isinstance(item, dict):
            raise InvalidDispenseRequest(f"Requested item must be an object: {item!r}")

        line_id = item.get('line_id')
        if not line_id and item.get('product_ref'):
            line_id = next(
                (
                    line.line_id for line in lines
                    if line.product_ref == item['product_ref'] and not line.discontinued
                ),
                None,
            ) or next(
                (line.line_id for line in lines if line.product_ref == item['product_ref']),
                None,
            )
        if not line_id:
            raise UnknownLine(prescription.pk, item.get('line_id') or item.get('product_ref') or '')

        quantity = item.get('quantity')
        if quantity is not None and (
            isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0
        ):
            raise InvalidDispenseRequest(f"Quantity must be a positive integer, got {quantity!r}")
        if line_id in seen:
            raise InvalidDispenseRequest(f"Line '{line_id}' requested twice")
        seen.add(line_id)
        resolved.append(RequestedLine(line_id=line_id, quantity=quantity))
    return resolved


def check_ceilings(prescription, fulfillments) -> None:
    """Raise RefillLimitExceeded if a planned line would pass quantity x (1 + refills)."""
    totals = dispensed_totals(prescription)
    for fulfillment in fulfillments:
        line = prescription.get_line(fulfillment.line_id)
        remaining = line.max_dispensable - totals.get(line.line_id, 0)
        if fulfillment.fulfilled > remaining:
            raise RefillLimitExceeded(
                line.line_id, fulfillment.fulfilled, max(remaining, 0), line.max_dispensable,
            )


def plan(prescription, pharmacy_id: str, requests, *, allow_partial: bool, now=None) -> list[LineFulfillment]:
    """
    Choose lots for every requested line.

    Lots are taken first-expiring-first-out for the prescribed product,
    then from approved substitutes by priority when the line allows it.
    Units planned for one line are not offered to the next.

    Raises:
        UnknownLine / LineDiscontinued: for bad lines
        RefillLimitExceeded: if a line would pass its lifetime ceiling
        LotUnavailable: if stock is short and partial fulfillment is off,
            or nothing at all can be dispensed
    """
    totals = dispensed_totals(prescription)
    taken = defaultdict(int)
    if not requests:
        raise InvalidDispenseRequest("No items requested")
    fulfillments = []

    for request in requests:
        line = prescription.get_line(request.line_id)
        if line is None:
            raise UnknownLine(prescription.pk, request.line_id)
        if line.discontinued:
            raise LineDiscontinued(line.line_id)

        wanted = request.quantity or line.quantity
        remaining = line.max_dispensable - totals.get(line.line_id, 0)
        if wanted > remaining:
            raise RefillLimitExceeded(line.line_id, wanted, max(remaining, 0), line.max_dispensable)

        products = [line.product_ref]
        if line.substitution_allowed:
            products += [ref for ref in approved_substitutes(line.product_ref) if ref != line.product_ref]

        fulfillment = LineFulfillment(line_id=line.line_id, product_ref=line.product_ref, requested=wanted)
        for product_ref in products:
            for lot in fefo_lots(pharmacy_id, product_ref, now):
                need = wanted - fulfillment.fulfilled
                if need <= 0:
                    break
                free = lot.available_quantity - taken[lot.pk]
                if free <= 0:
                    continue
                units = min(need, free)
                taken[lot.pk] += units
                fulfillment.allocations.append(Allocation(
                    lot_id=lot.pk,
                    product_ref=product_ref,
                    batch_number=lot.batch_number,
                    expiry_date=lot.expiry_date,
                    quantity=units,
                    substituted=product_ref != line.product_ref,
                ))
            if fulfillment.fulfilled >= wanted:
                break

        if fulfillment.shortfall and not allow_partial:
            raise LotUnavailable(line.line_id, line.product_ref, wanted, fulfillment.fulfilled)
        fulfillments.append(fulfillment)

    if not any(f.fulfilled for f in fulfillments):
        first = fulfillments[0]
        raise LotUnavailable(first.line_id, first.product_ref, first.requested, 0)

    return fulfillments
