"""Payment services.

Provides:
- initiate_payment: allocate a PAY number and write 'initiated'
- mark_pending / authorize: gateway hand-off states
- capture: authorized -> captured, with bounded retries
- refund: captured -> partially_refunded / refunded, never over-refunding
- fail / cancel: terminal exits from any open status
- open_payment_for: the live payment linked to an owner

Captures and failures are mirrored onto the owning appointment or
membership timeline as payment_successful / payment_failed when that
transition is legal there.
"""

import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.contrib.contenttypes.models import ContentType
from django.db import OperationalError, transaction
from django.utils import timezone

from medcore_basemodels.concurrency import is_lock_contention, sleep_before_retry
from medcore_basemodels.exceptions import StaleVersionError
from medcore_basemodels.validators import validate_extension_map
from medcore_money import Money
from medcore_sequence.services import allocate
from medcore_timeline import services as timeline
from medcore_timeline.exceptions import InvalidTransition, TimelineContention

from .conf import get_setting
from .exceptions import (
    CaptureFailed,
    CaptureRetryNotDue,
    GatewayError,
    InvalidPaymentRequest,
    PaymentRetriesExhausted,
    RefundContention,
    RefundExceedsCaptured,
)
from .models import Payment, PaymentEntityType, PaymentStatus

logger = logging.getLogger(__name__)

NUMBER_PREFIX = 'PAY'
REFUND_STATUSES = (PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED)


def _money(amount, currency: str) -> Money:
    try:
        money = Money(amount, currency).quantized()
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidPaymentRequest(f"Invalid amount {amount!r}")
    if not money.is_positive():
        raise InvalidPaymentRequest(f"Amount must be positive, got {amount}")
    return money


def _sync_owner(payment: Payment, status: str, actor=None) -> None:
    """Append status to the owner's timeline if the owner can take it now."""
    owner = payment.owner
    if owner is None or not getattr(owner, 'timeline_entity_type', None):
        return
    if status not in timeline.allowed_transitions(owner):
        logger.info(
            "Owner %s of payment %s is '%s'; not recording %s",
            payment.entity_ref, payment.number, owner.status, status,
        )
        return
    timeline.append(
        owner, status,
        note=f"Payment {payment.number}",
        actor=actor,
        amount=payment.amount,
        reference=payment.number,
    )


@transaction.atomic
def initiate_payment(
    entity_type: str,
    entity_ref: str,
    amount,
    currency: str = None,
    *,
    owner=None,
    payment_method: str = '',
    actor=None,
    metadata: dict = None,
    now=None,
) -> Payment:
    """
    Create a payment for an owning entity.

    Args:
        entity_type: One of PaymentEntityType
        entity_ref: Owner reference, e.g. its document number
        amount: Positive amount
        currency: ISO code; defaults to MEDCORE_PAYMENTS_DEFAULT_CURRENCY
        owner: Optional owning model instance (linked for timeline sync)

    Raises:
        InvalidPaymentRequest: For bad amounts or entity types
    """
    if entity_type not in PaymentEntityType.values:
        raise InvalidPaymentRequest(f"Unknown entity type '{entity_type}'")

    money = _money(amount, currency or get_setting('DEFAULT_CURRENCY', 'INR'))
    metadata = metadata or {}
    validate_extension_map(metadata)
    now = now or timezone.now()

    payment = Payment(
        number=allocate(NUMBER_PREFIX, now),
        entity_type=entity_type,
        entity_ref=entity_ref,
        amount=money.amount,
        currency=money.currency,
        payment_method=payment_method,
        metadata=metadata,
    )
    if owner is not None:
        payment.entity_content_type = ContentType.objects.get_for_model(owner)
        payment.entity_id = str(owner.pk)

    timeline.start(payment, note="Payment initiated", actor=actor, amount=money.amount, now=now)
    payment.save()

    logger.info(
        "Initiated payment %s for %s %s: %s %s",
        payment.number, entity_type, entity_ref, money.amount, money.currency,
    )
    return payment


def mark_pending(payment: Payment, actor=None, note: str = '') -> Payment:
    timeline.append(payment, PaymentStatus.PENDING, note, actor, amount=payment.amount)
    return payment


def authorize(payment: Payment, actor=None, *, gateway_ref: str = '', note: str = '') -> Payment:
    """initiated/pending -> authorized."""
    changes = {'gateway_ref': gateway_ref} if gateway_ref else None
    timeline.append(
        payment, PaymentStatus.AUTHORIZED, note, actor,
        amount=payment.amount, changes=changes,
    )
    return payment


def next_retry_at(payment: Payment):
    """Earliest time the next capture attempt is allowed (None if not throttled)."""
    if not payment.retry_count or not payment.last_retry_at:
        return None
    base = get_setting('RETRY_BACKOFF_SECONDS', 30)
    return payment.last_retry_at + timedelta(seconds=base * 2 ** (payment.retry_count - 1))


def _record_capture_failure(payment: Payment, exc: GatewayError, actor, now):
    retry_count = payment.retry_count + 1
    limit = get_setting('MAX_CAPTURE_ATTEMPTS', 3)
    reason = str(exc) or exc.__class__.__name__

    if retry_count >= limit:
        timeline.append(
            payment, PaymentStatus.FAILED,
            note=f"Capture failed {retry_count} times: {reason}",
            actor=actor,
            amount=payment.amount,
            changes={
                'retry_count': retry_count,
                'last_retry_at': now,
                'failure_reason': reason,
            },
            now=now,
        )
        logger.warning("Payment %s failed after %d capture attempts", payment.number, retry_count)
        _sync_owner(payment, 'payment_failed', actor)
        raise PaymentRetriesExhausted(payment.number, retry_count) from exc

    payment.cas_update(retry_count=retry_count, last_retry_at=now, failure_reason=reason)
    due = next_retry_at(payment)
    logger.warning(
        "Capture of payment %s failed (attempt %d/%d): %s",
        payment.number, retry_count, limit, reason,
    )
    raise CaptureFailed(payment.number, retry_count, due, reason) from exc


def capture(payment: Payment, actor=None, *, gateway=None, note: str = '', now=None) -> Payment:
    """
    Capture an authorized payment.

    Args:
        payment: The payment to capture
        actor: Who triggered the capture
        gateway: Optional callable(payment) -> gateway reference; raises
            GatewayError when the gateway declines or is unreachable
        now: Clock override

    Returns:
        The captured payment

    Raises:
        InvalidTransition: If the payment is not 'authorized'
        CaptureRetryNotDue: If retried before the backoff elapsed
        CaptureFailed: If the gateway failed and retries remain
        PaymentRetriesExhausted: If the gateway failed for the last time
    """
    now = now or timezone.now()
    payment.refresh_from_db()

    if payment.status != PaymentStatus.AUTHORIZED:
        raise InvalidTransition('payment', payment.status, PaymentStatus.CAPTURED)

    due = next_retry_at(payment)
    if due is not None and now < due:
        raise CaptureRetryNotDue(payment.number, due)

    gateway_ref = payment.gateway_ref
    if gateway is not None:
        try:
            gateway_ref = gateway(payment) or gateway_ref
        except GatewayError as exc:
            _record_capture_failure(payment, exc, actor, now)

    timeline.append(
        payment, PaymentStatus.CAPTURED, note, actor,
        amount=payment.amount,
        changes={'captured_at': now, 'gateway_ref': gateway_ref},
        now=now,
    )
    logger.info("Captured payment %s: %s %s", payment.number, payment.amount, payment.currency)

    _sync_owner(payment, 'payment_successful', actor)
    return payment


def _apply_refund(payment_id, amount, actor, reason, reference, now) -> None:
    """One refund attempt against a freshly read row."""
    fresh = Payment.objects.select_for_update().get(pk=payment_id)

    if reference and any(
        entry.reference == reference and entry.status in REFUND_STATUSES
        for entry in fresh.timeline_entries
    ):
        logger.info("Refund %s on payment %s already applied", reference, fresh.number)
        return

    if fresh.status not in (PaymentStatus.CAPTURED, PaymentStatus.PARTIALLY_REFUNDED):
        raise InvalidTransition('payment', fresh.status, PaymentStatus.REFUNDED)

    requested = _money(amount, fresh.currency)
    refundable = fresh.refundable
    if requested > refundable:
        raise RefundExceedsCaptured(fresh.number, requested.amount, refundable.amount)

    total = (fresh.refunded + requested).quantized().amount
    status = (
        PaymentStatus.REFUNDED if total == fresh.amount
        else PaymentStatus.PARTIALLY_REFUNDED
    )

    timeline.append(
        fresh, status, reason, actor,
        amount=requested.amount,
        reference=reference,
        dedupe=False,
        changes={'refund_amount': total, 'refunded_at': now},
        now=now,
    )
    logger.info(
        "Refunded %s %s on payment %s (total %s, %s)",
        requested.amount, fresh.currency, fresh.number, total, status,
    )


def refund(
    payment: Payment,
    amount,
    actor=None,
    *,
    reason: str = '',
    reference: str = '',
    now=None,
) -> Payment:
    """
    Refund part or all of a captured payment.

    The cumulative refund may reach the captured amount but never pass it;
    an oversized request is rejected, not truncated. A repeated
    `reference` returns the payment unchanged. When a concurrent writer
    moves the row first, the refund is re-read and re-checked against the
    new balance.

    Raises:
        InvalidTransition: If the payment is not captured or partially refunded
        InvalidPaymentRequest: If amount is not positive
        RefundExceedsCaptured: If amount > amount - refund_amount
        RefundContention: If concurrent writers kept winning
    """
    now = now or timezone.now()
    attempts = get_setting('MAX_REFUND_ATTEMPTS', 5)

    for attempt in range(attempts):
        try:
            with transaction.atomic():
                _apply_refund(payment.pk, amount, actor, reason, reference, now)
        except (StaleVersionError, TimelineContention) as exc:
            cause = str(exc)
        except OperationalError as exc:
            if not is_lock_contention(exc):
                raise
            cause = str(exc)
        else:
            payment.refresh_from_db()
            return payment

        logger.warning(
            "Refund attempt %d/%d on payment %s collided: %s",
            attempt + 1, attempts, payment.number, cause,
        )
        if attempt + 1 < attempts:
            sleep_before_retry(attempt, get_setting('BACKOFF_SECONDS', 0.01))

    raise RefundContention(payment.number, attempts)


def fail(payment: Payment, reason: str, actor=None) -> Payment:
    """Record a decline or chargeback; the payment is terminal."""
    timeline.append(
        payment, PaymentStatus.FAILED, reason, actor,
        amount=payment.amount,
        changes={'failure_reason': reason},
    )
    logger.warning("Payment %s failed: %s", payment.number, reason)
    _sync_owner(payment, 'payment_failed', actor)
    return payment


def cancel(payment: Payment, actor=None, reason: str = '') -> Payment:
    timeline.append(payment, PaymentStatus.CANCELLED, reason, actor, amount=payment.amount)
    logger.info("Payment %s cancelled", payment.number)
    return payment


def refundable_amount(payment: Payment) -> Decimal:
    return payment.refundable.amount


def open_payment_for(owner):
    """The owner's most recent payment that has not failed or been cancelled."""
    return (
        Payment.objects.filter(
            entity_content_type=ContentType.objects.get_for_model(owner),
            entity_id=str(owner.pk),
        )
        .exclude(status__in=(PaymentStatus.FAILED, PaymentStatus.CANCELLED))
        .order_by('-created_at', '-number')
        .first()
    )
