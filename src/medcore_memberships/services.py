"""Membership services.

Provides:
- create_membership: allocate a MEM number, snapshot the plan, write 'created'
- request_payment / activate / renew / cancel_membership / expire_membership
- add_family_member / remove_family_member
- use_benefit: guarded increment against monthly and lifetime limits
- reset_monthly_usage: the monthly job run by an external scheduler
"""

import calendar
import logging
from datetime import date, timedelta

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from medcore_basemodels.utils import actor_ref, as_date
from medcore_basemodels.validators import validate_extension_map
from medcore_payments.services import initiate_payment, open_payment_for
from medcore_sequence.services import allocate
from medcore_timeline import services as timeline
from medcore_timeline.tables import MEMBERSHIP_ACTIVE_STATES

from .exceptions import (
    BenefitLimitExceeded,
    FamilyLimitExceeded,
    InvalidMembershipRequest,
    MembershipNotActive,
    UnknownBenefit,
)
from .models import Membership, MembershipBenefitUsage, MembershipSource

logger = logging.getLogger(__name__)

NUMBER_PREFIX = 'MEM'
DURATION_UNITS = ('days', 'months', 'years')


def add_duration(start: date, value: int, unit: str) -> date:
    """Add a plan duration to a date; month ends clamp (Jan 31 + 1 month = Feb 28/29)."""
    if unit == 'days':
        return start + timedelta(days=value)
    months = value * 12 if unit == 'years' else value
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _plan_duration(plan: dict) -> tuple[int, str]:
    duration = plan.get('duration') or {}
    value = duration.get('value')
    unit = duration.get('unit', 'months')
    if isinstance(value, bool) or not isinstance(value, int) or value < 1 or unit not in DURATION_UNITS:
        raise InvalidMembershipRequest(f"Invalid plan duration {duration!r}")
    return value, unit


def _is_active(membership: Membership, today: date) -> bool:
    return membership.status in MEMBERSHIP_ACTIVE_STATES and membership.end_date >= today


@transaction.atomic
def create_membership(
    patient_id,
    plan: dict,
    *,
    start_date=None,
    auto_renew: bool = False,
    source: str = MembershipSource.APP,
    actor=None,
    metadata: dict = None,
    now=None,
) -> Membership:
    """
    Enrol a patient in a plan.

    Args:
        patient_id: The member
        plan: Plan definition, snapshotted as-is:
            {code, name, price, duration: {value, unit}, max_members,
             benefits: [{type, limit_per_month, limit_total}, ...]}

    Raises:
        InvalidMembershipRequest: If the plan has no code or a bad duration
    """
    if not plan.get('code'):
        raise InvalidMembershipRequest("Plan needs a code")
    if source not in MembershipSource.values:
        raise InvalidMembershipRequest(f"Unknown source '{source}'")
    value, unit = _plan_duration(plan)
    metadata = metadata or {}
    validate_extension_map(metadata)
    now = now or timezone.now()
    start_date = start_date or as_date(now)

    membership = Membership(
        number=allocate(NUMBER_PREFIX, now),
        patient_id=str(patient_id),
        plan_code=str(plan['code']).upper(),
        plan_snapshot=plan,
        start_date=start_date,
        end_date=add_duration(start_date, value, unit),
        auto_renew=auto_renew,
        source=source,
        metadata=metadata,
    )
    timeline.start(membership, note="Membership created", actor=actor, now=now)
    membership.save()

    for benefit in plan.get('benefits', []):
        if benefit.get('is_active', True) is False:
            continue
        MembershipBenefitUsage.objects.create(
            membership=membership,
            benefit_type=benefit['type'],
            limit_per_month=benefit.get('limit_per_month'),
            limit_total=benefit.get('limit_total'),
        )

    logger.info("Created membership %s (%s) for %s", membership.number, membership.plan_code, patient_id)
    return membership


@transaction.atomic
def request_payment(membership: Membership, actor=None, *, currency: str = None, payment_method: str = ''):
    """
    Move to payment_pending and open a payment for the plan price.

    A redelivered request returns the payment it already opened.
    """
    price = membership.plan_snapshot.get('price')
    if not price:
        raise InvalidMembershipRequest(f"Plan {membership.plan_code} has no price")

    entry = timeline.append(membership, 'payment_pending', "Awaiting payment", actor, amount=price)
    if entry.replayed:
        payment = open_payment_for(membership)
        if payment is not None:
            logger.info("Payment request for %s replayed as %s", membership.number, payment.number)
            return payment
    return initiate_payment(
        membership.payment_entity_type,
        membership.number,
        price,
        currency,
        owner=membership,
        payment_method=payment_method,
        actor=actor,
    )


def activate(membership: Membership, actor=None, note: str = '') -> Membership:
    timeline.append(membership, 'active', note, actor)
    logger.info("Membership %s activated", membership.number)
    return membership


def renew(membership: Membership, actor=None, *, amount=None, payment_ref: str = '', now=None) -> Membership:
    """
    Extend the membership by one plan duration.

    The new period starts at the later of the current end date and today.
    """
    now = now or timezone.now()
    value, unit = _plan_duration(membership.plan_snapshot)
    base = max(membership.end_date, as_date(now))
    end_date = add_duration(base, value, unit)

    history = list(membership.renewal_history or []) + [{
        'renewed_at': now.isoformat(),
        'previous_end_date': membership.end_date.isoformat(),
        'end_date': end_date.isoformat(),
        'amount': None if amount is None else str(amount),
        'payment_ref': payment_ref,
        'renewed_by': actor_ref(actor),
    }]
    timeline.append(
        membership, 'renewed', f"Renewed until {end_date}", actor,
        amount=amount,
        reference=payment_ref,
        changes={'end_date': end_date, 'renewal_history': history},
        now=now,
    )
    logger.info("Membership %s renewed until %s", membership.number, end_date)
    return membership


def add_family_member(membership: Membership, member_id, relationship: str, actor=None, now=None) -> Membership:
    """
    Add a family member within the plan's max_members (holder included).

    Raises:
        InvalidMembershipRequest: If the member is already on the membership
        FamilyLimitExceeded: If the plan is full
    """
    now = now or timezone.now()
    member_id = str(member_id)
    active = membership.active_family_members
    if member_id == membership.patient_id or any(m['member_id'] == member_id for m in active):
        raise InvalidMembershipRequest(f"{member_id} is already on membership {membership.number}")

    limit = membership.plan_snapshot.get('max_members', 1)
    if len(active) + 1 >= limit:
        raise FamilyLimitExceeded(membership.number, limit)

    members = list(membership.family_members or []) + [{
        'member_id': member_id,
        'relationship': relationship,
        'added_at': now.isoformat(),
        'is_active': True,
    }]
    timeline.append(
        membership, 'member_added', f"Added {relationship} {member_id}", actor,
        reference=member_id,
        changes={'family_members': members},
        now=now,
    )
    return membership


def remove_family_member(membership: Membership, member_id, actor=None, now=None) -> Membership:
    member_id = str(member_id)
    if not any(m['member_id'] == member_id for m in membership.active_family_members):
        raise InvalidMembershipRequest(f"{member_id} is not on membership {membership.number}")

    members = [
        dict(m, is_active=False) if m['member_id'] == member_id else m
        for m in membership.family_members
    ]
    timeline.append(
        membership, 'member_removed', f"Removed {member_id}", actor,
        reference=member_id,
        changes={'family_members': members},
        now=now,
    )
    return membership


def cancel_membership(membership: Membership, actor=None, reason: str = '', now=None) -> Membership:
    now = now or timezone.now()
    timeline.append(
        membership, 'cancelled', reason, actor,
        changes={'cancellation_reason': reason, 'cancelled_at': now},
        now=now,
    )
    logger.info("Membership %s cancelled", membership.number)
    return membership


def expire_membership(membership: Membership, as_of=None) -> bool:
    """Append 'expired' once the end date has passed; returns True if expired."""
    today = as_date(as_of)
    if membership.status not in MEMBERSHIP_ACTIVE_STATES or membership.end_date >= today:
        return False
    timeline.append(membership, 'expired', f"Ended {membership.end_date}")
    logger.info("Membership %s expired", membership.number)
    return True


def use_benefit(membership: Membership, benefit_type: str, *, now=None) -> MembershipBenefitUsage:
    """
    Consume one use of a benefit.

    The increment is a single guarded UPDATE, so concurrent uses can never
    push a counter past its limit.

    Raises:
        MembershipNotActive: If the membership is not active or has ended
        UnknownBenefit: If the plan has no such benefit
        BenefitLimitExceeded: If the monthly or lifetime limit is used up
    """
    now = now or timezone.now()
    membership.refresh_from_db(fields=['status', 'end_date', 'timeline', 'lock_version'])
    if not _is_active(membership, as_date(now)):
        raise MembershipNotActive(membership.number, membership.status)

    try:
        usage = MembershipBenefitUsage.objects.get(membership=membership, benefit_type=benefit_type)
    except MembershipBenefitUsage.DoesNotExist:
        raise UnknownBenefit(membership.number, benefit_type)

    updated = MembershipBenefitUsage.objects.filter(pk=usage.pk).filter(
        Q(limit_total__isnull=True) | Q(used_count__lt=F('limit_total')),
        Q(limit_per_month__isnull=True) | Q(month_count__lt=F('limit_per_month')),
    ).update(
        used_count=F('used_count') + 1,
        month_count=F('month_count') + 1,
        last_used_at=now,
        updated_at=now,
    )
    usage.refresh_from_db()

    if not updated:
        if usage.limit_total is not None and usage.used_count >= usage.limit_total:
            raise BenefitLimitExceeded(membership.number, benefit_type, 'total', usage.limit_total)
        raise BenefitLimitExceeded(membership.number, benefit_type, 'monthly', usage.limit_per_month)

    logger.info(
        "Membership %s used %s (%d total, %d this month)",
        membership.number, benefit_type, usage.used_count, usage.month_count,
    )
    return usage


def reset_monthly_usage() -> int:
    """Zero every monthly counter; returns the number of rows reset."""
    reset = MembershipBenefitUsage.objects.filter(month_count__gt=0).update(
        month_count=0,
        updated_at=timezone.now(),
    )
    logger.info("Reset monthly benefit usage on %d rows", reset)
    return reset
