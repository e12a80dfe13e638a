"""Tests for the payment lifecycle."""
from concurrent.futures import ThreadPoolExecutor
from datetime import date, time, timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.db import connection

from medcore_appointments.services import create_appointment, request_payment
from medcore_basemodels.exceptions import StaleVersionError
from medcore_payments import services
from medcore_payments.exceptions import (
    CaptureFailed,
    CaptureRetryNotDue,
    GatewayError,
    InvalidPaymentRequest,
    PaymentRetriesExhausted,
    RefundContention,
    RefundExceedsCaptured,
)
from medcore_payments.models import Payment, PaymentStatus
from medcore_timeline import services as timeline
from medcore_timeline.exceptions import InvalidTransition


def declining_gateway(payment):
    raise GatewayError("card declined")


@pytest.mark.django_db
class TestInitiatePayment:
    """initiate_payment() numbers the payment and starts its timeline."""

    def test_initiate(self, make_payment):
        payment = make_payment()

        assert payment.number == 'PAY2506010001'
        assert payment.status == PaymentStatus.INITIATED
        assert payment.amount == Decimal('1000.00')
        assert payment.currency == 'INR'
        assert payment.refund_amount == Decimal('0')
        assert payment.timeline[0]['status'] == 'initiated'

    def test_numbers_increase(self, make_payment):
        make_payment()
        assert make_payment(entity_ref='ORD2').number == 'PAY2506010002'

    def test_default_currency_setting(self, make_payment, settings):
        settings.MEDCORE_PAYMENTS_DEFAULT_CURRENCY = 'USD'
        assert make_payment().currency == 'USD'

    @pytest.mark.parametrize('amount', [0, -5, 'abc', None])
    def test_invalid_amount(self, make_payment, amount):
        with pytest.raises(InvalidPaymentRequest):
            make_payment(amount=amount)
        assert not Payment.objects.exists()

    def test_unknown_entity_type(self, make_payment):
        with pytest.raises(InvalidPaymentRequest):
            make_payment(entity_type='invoice')


@pytest.mark.django_db
class TestCapture:
    """Capture moves authorized payments forward with bounded retries."""

    def test_capture(self, captured_payment, now):
        assert captured_payment.status == PaymentStatus.CAPTURED
        assert captured_payment.captured_at == now
        assert captured_payment.gateway_ref == 'gw_1'
        assert [e['status'] for e in captured_payment.timeline] == ['initiated', 'authorized', 'captured']

    def test_capture_requires_authorization(self, make_payment):
        payment = make_payment()
        with pytest.raises(InvalidTransition):
            services.capture(payment)

    def test_gateway_reference_is_stored(self, make_payment):
        payment = make_payment()
        services.mark_pending(payment)
        services.authorize(payment)
        services.capture(payment, gateway=lambda p: 'ch_42')

        assert payment.gateway_ref == 'ch_42'

    def test_failure_then_backoff_then_success(self, make_payment, now):
        payment = make_payment()
        services.authorize(payment)

        with pytest.raises(CaptureFailed) as exc_info:
            services.capture(payment, gateway=declining_gateway, now=now)
        assert exc_info.value.retry_count == 1
        assert exc_info.value.next_retry_at == now + timedelta(seconds=30)

        with pytest.raises(CaptureRetryNotDue):
            services.capture(payment, now=now + timedelta(seconds=10))

        services.capture(payment, now=now + timedelta(seconds=30))
        assert payment.status == PaymentStatus.CAPTURED
        assert payment.retry_count == 1

    def test_retries_exhausted(self, make_payment, now):
        payment = make_payment()
        services.authorize(payment)

        with pytest.raises(CaptureFailed):
            services.capture(payment, gateway=declining_gateway, now=now)
        with pytest.raises(CaptureFailed) as exc_info:
            services.capture(payment, gateway=declining_gateway, now=now + timedelta(seconds=30))
        assert exc_info.value.next_retry_at == now + timedelta(seconds=90)

        with pytest.raises(PaymentRetriesExhausted) as exc_info:
            services.capture(payment, gateway=declining_gateway, now=now + timedelta(seconds=90))

        assert exc_info.value.attempts == 3
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.FAILED
        assert payment.retry_count == 3
        assert payment.failure_reason == 'card declined'
        with pytest.raises(InvalidTransition):
            services.capture(payment, now=now + timedelta(hours=1))

    def test_attempt_limit_counts_the_first_attempt(self, make_payment, settings, now):
        settings.MEDCORE_PAYMENTS_MAX_CAPTURE_ATTEMPTS = 1
        payment = make_payment()
        services.authorize(payment)

        with pytest.raises(PaymentRetriesExhausted) as exc_info:
            services.capture(payment, gateway=declining_gateway, now=now)

        assert exc_info.value.attempts == 1
        assert payment.status == PaymentStatus.FAILED

    def test_next_retry_at(self, make_payment):
        payment = make_payment()
        assert services.next_retry_at(payment) is None


@pytest.mark.django_db
class TestRefund:
    """Refunds accumulate up to, and never past, the captured amount."""

    def test_partial_refund_then_oversized_refund(self, captured_payment):
        services.refund(captured_payment, Decimal('400'), reason='one item returned')

        assert captured_payment.status == PaymentStatus.PARTIALLY_REFUNDED
        assert captured_payment.refund_amount == Decimal('400.00')

        with pytest.raises(RefundExceedsCaptured) as exc_info:
            services.refund(captured_payment, Decimal('700'))

        assert exc_info.value.refundable == Decimal('600.00')
        captured_payment.refresh_from_db()
        assert captured_payment.refund_amount == Decimal('400.00')
        assert captured_payment.status == PaymentStatus.PARTIALLY_REFUNDED

    def test_refunds_reach_full_amount(self, captured_payment):
        services.refund(captured_payment, '400')
        services.refund(captured_payment, '400')
        services.refund(captured_payment, '200')

        assert captured_payment.status == PaymentStatus.REFUNDED
        assert captured_payment.refund_amount == captured_payment.amount
        assert services.refundable_amount(captured_payment) == Decimal('0.00')
        with pytest.raises(InvalidTransition):
            services.refund(captured_payment, '1')

    def test_refund_reference_is_idempotent(self, captured_payment):
        services.refund(captured_payment, '250', reference='RF-1')
        services.refund(captured_payment, '250', reference='RF-1')

        assert captured_payment.refund_amount == Decimal('250.00')
        assert len(captured_payment.timeline) == 4

    def test_refund_before_capture(self, make_payment):
        with pytest.raises(InvalidTransition):
            services.refund(make_payment(), '10')

    def test_lost_race_is_retried(self, captured_payment):
        real_append = timeline.append
        calls = []

        def racing_append(entity, *args, **kwargs):
            calls.append(entity.lock_version)
            if len(calls) == 1:
                raise StaleVersionError('Payment', entity.pk, entity.lock_version)
            return real_append(entity, *args, **kwargs)

        with mock.patch.object(timeline, 'append', side_effect=racing_append):
            services.refund(captured_payment, '300')

        assert len(calls) == 2
        assert captured_payment.refund_amount == Decimal('300.00')
        assert captured_payment.status == PaymentStatus.PARTIALLY_REFUNDED

    def test_gives_up_when_every_attempt_collides(self, captured_payment, settings):
        settings.MEDCORE_PAYMENTS_MAX_REFUND_ATTEMPTS = 2
        stale = StaleVersionError('Payment', captured_payment.pk, 0)

        with mock.patch.object(timeline, 'append', side_effect=stale):
            with pytest.raises(RefundContention) as exc_info:
                services.refund(captured_payment, '300')

        assert exc_info.value.attempts == 2
        captured_payment.refresh_from_db()
        assert captured_payment.refund_amount == Decimal('0')

    @pytest.mark.parametrize('amount', ['0', '-1'])
    def test_refund_must_be_positive(self, captured_payment, amount):
        with pytest.raises(InvalidPaymentRequest):
            services.refund(captured_payment, amount)


@pytest.mark.django_db
class TestTerminalExits:
    """fail and cancel close any payment that is not yet terminal."""

    def test_fail(self, make_payment):
        payment = services.fail(make_payment(), 'insufficient funds')

        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == 'insufficient funds'
        with pytest.raises(InvalidTransition):
            services.authorize(payment)

    def test_cancel(self, make_payment):
        payment = services.cancel(make_payment(), reason='patient changed mind')
        assert payment.status == PaymentStatus.CANCELLED

    def test_captured_payment_can_be_cancelled(self, captured_payment):
        services.cancel(captured_payment, reason='order voided')

        assert captured_payment.status == PaymentStatus.CANCELLED
        with pytest.raises(InvalidTransition):
            services.refund(captured_payment, '100')

    def test_partially_refunded_payment_can_fail(self, captured_payment):
        services.refund(captured_payment, '400')
        services.fail(captured_payment, 'chargeback')

        assert captured_payment.status == PaymentStatus.FAILED
        assert captured_payment.refund_amount == Decimal('400.00')
        assert captured_payment.failure_reason == 'chargeback'

    def test_terminal_payment_cannot_be_cancelled(self, captured_payment):
        services.refund(captured_payment, '1000')
        with pytest.raises(InvalidTransition):
            services.cancel(captured_payment)


@pytest.mark.django_db
class TestOwnerTimeline:
    """Captures and failures are mirrored onto the owning appointment."""

    @pytest.fixture
    def appointment(self):
        return create_appointment('DR1', 'PT1', date(2025, 6, 3), time(10, 30), amount=Decimal('500'))

    def test_capture_marks_owner_paid(self, appointment):
        payment = request_payment(appointment)
        assert payment.owner == appointment
        assert payment.entity_ref == appointment.number

        services.authorize(payment)
        services.capture(payment)

        appointment.refresh_from_db()
        assert appointment.status == 'payment_successful'
        assert appointment.timeline[-1]['reference'] == payment.number

    def test_failure_marks_owner(self, appointment):
        payment = request_payment(appointment)
        services.fail(payment, 'declined')

        appointment.refresh_from_db()
        assert appointment.status == 'payment_failed'

        # A new payment can be requested after a failure
        second = request_payment(appointment)
        assert second.number != payment.number
        appointment.refresh_from_db()
        assert appointment.status == 'payment_pending'

    def test_owner_in_other_state_is_left_alone(self, appointment):
        from medcore_appointments.services import cancel

        payment = request_payment(appointment)
        appointment.refresh_from_db()
        cancel(appointment, reason='doctor unavailable')
        services.authorize(payment)
        services.capture(payment)

        appointment.refresh_from_db()
        assert appointment.status == 'cancelled'
        assert payment.status == PaymentStatus.CAPTURED


@pytest.mark.django_db(transaction=True)
class TestConcurrentRefunds:
    """Racing refunds are re-checked against the balance the winner left."""

    def test_oversubscribed_refunds(self, captured_payment, settings):
        settings.MEDCORE_PAYMENTS_MAX_REFUND_ATTEMPTS = 100
        settings.MEDCORE_PAYMENTS_BACKOFF_SECONDS = 0.005
        settings.MEDCORE_TIMELINE_MAX_ATTEMPTS = 20
        settings.MEDCORE_TIMELINE_BACKOFF_SECONDS = 0.005

        def refund_300(_):
            try:
                services.refund(Payment.objects.get(pk=captured_payment.pk), '300')
                return 'refunded'
            except (RefundExceedsCaptured, RefundContention) as exc:
                return type(exc).__name__
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=5) as executor:
            outcomes = list(executor.map(refund_300, range(5)))

        refunded = outcomes.count('refunded')
        assert refunded <= 3
        if 'RefundContention' not in outcomes:
            assert refunded == 3
            assert outcomes.count('RefundExceedsCaptured') == 2

        captured_payment.refresh_from_db()
        assert captured_payment.refund_amount == Decimal('300') * refunded
        assert captured_payment.refund_amount <= captured_payment.amount
        refund_entries = [e for e in captured_payment.timeline if e['status'] == 'partially_refunded']
        assert len(refund_entries) == refunded
