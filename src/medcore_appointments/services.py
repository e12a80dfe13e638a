"""Appointment services.

Every status change is a timeline append validated against the
appointment transition table; nothing writes `status` directly.
"""

import logging

from django.db import transaction
from django.utils import timezone

from medcore_basemodels.validators import validate_extension_map
from medcore_payments.services import initiate_payment, open_payment_for
from medcore_sequence.services import allocate
from medcore_timeline import services as timeline

from .exceptions import InvalidAppointmentRequest
from .models import Appointment, AppointmentType, BookingSource

logger = logging.getLogger(__name__)

NUMBER_PREFIX = 'APT'


@transaction.atomic
def create_appointment(
    doctor_id,
    patient_id,
    slot_date,
    slot_time,
    *,
    hospital_id: str = '',
    appointment_type: str = AppointmentType.IN_PERSON,
    source: str = BookingSource.APP,
    duration_minutes: int = 15,
    reason: str = '',
    amount=None,
    rescheduled_from: Appointment = None,
    actor=None,
    metadata: dict = None,
    now=None,
) -> Appointment:
    """
    Book an appointment: allocate an APT number and write 'created'.

    The number's date partition is the booking date, not the slot date.

    Raises:
        InvalidAppointmentRequest: For unknown types or a non-positive duration
        AllocationExhausted / AllocatorUnavailable: From the number allocator
    """
    if appointment_type not in AppointmentType.values:
        raise InvalidAppointmentRequest(f"Unknown appointment type '{appointment_type}'")
    if source not in BookingSource.values:
        raise InvalidAppointmentRequest(f"Unknown booking source '{source}'")
    if duration_minutes <= 0:
        raise InvalidAppointmentRequest("Duration must be positive")
    metadata = metadata or {}
    validate_extension_map(metadata)
    now = now or timezone.now()

    appointment = Appointment(
        number=allocate(NUMBER_PREFIX, now),
        doctor_id=str(doctor_id),
        patient_id=str(patient_id),
        hospital_id=hospital_id,
        appointment_type=appointment_type,
        source=source,
        slot_date=slot_date,
        slot_time=slot_time,
        duration_minutes=duration_minutes,
        reason=reason,
        amount=amount,
        rescheduled_from=rescheduled_from,
        metadata=metadata,
    )
    note = f"Rescheduled from {rescheduled_from.number}" if rescheduled_from else "Appointment booked"
    timeline.start(appointment, note=note, actor=actor, amount=amount, now=now)
    appointment.save()

    logger.info("Booked appointment %s for %s", appointment.number, slot_date)
    return appointment


@transaction.atomic
def request_payment(appointment: Appointment, actor=None, *, currency: str = None, payment_method: str = ''):
    """
    Move to payment_pending and open a payment for the fee.

    Returns:
        The new Payment, or the open one when the request is redelivered

    Raises:
        InvalidAppointmentRequest: If the appointment has no fee
        InvalidTransition: If payment cannot be requested from the current status
    """
    if not appointment.amount:
        raise InvalidAppointmentRequest(f"Appointment {appointment.number} has no fee")

    entry = timeline.append(appointment, 'payment_pending', "Awaiting payment", actor, amount=appointment.amount)
    if entry.replayed:
        payment = open_payment_for(appointment)
        if payment is not None:
            logger.info("Payment request for %s replayed as %s", appointment.number, payment.number)
            return payment
    return initiate_payment(
        appointment.payment_entity_type,
        appointment.number,
        appointment.amount,
        currency,
        owner=appointment,
        payment_method=payment_method,
        actor=actor,
    )


def confirm(appointment: Appointment, actor=None, note: str = '') -> Appointment:
    timeline.append(appointment, 'confirmed', note, actor)
    return appointment


def record_reminder_sent(appointment: Appointment, actor=None, note: str = '') -> Appointment:
    """Record that the (external) reminder was delivered."""
    timeline.append(appointment, 'reminder_sent', note, actor)
    return appointment


def check_in(appointment: Appointment, actor=None, note: str = '') -> Appointment:
    timeline.append(appointment, 'checked_in', note, actor)
    return appointment


def start(appointment: Appointment, actor=None, note: str = '') -> Appointment:
    timeline.append(appointment, 'in_progress', note, actor)
    return appointment


def complete(appointment: Appointment, actor=None, note: str = '') -> Appointment:
    timeline.append(appointment, 'completed', note, actor)
    logger.info("Appointment %s completed", appointment.number)
    return appointment


def cancel(appointment: Appointment, actor=None, reason: str = '') -> Appointment:
    timeline.append(appointment, 'cancelled', reason, actor)
    logger.info("Appointment %s cancelled", appointment.number)
    return appointment


def mark_no_show(appointment: Appointment, actor=None, note: str = '') -> Appointment:
    timeline.append(appointment, 'no_show', note, actor)
    return appointment


@transaction.atomic
def reschedule(
    appointment: Appointment,
    slot_date,
    slot_time,
    actor=None,
    reason: str = '',
    now=None,
) -> Appointment:
    """
    Close the appointment as 'rescheduled' and book its replacement.

    A redelivered call for the same slot returns the replacement already
    booked; any other call on a rescheduled appointment is rejected.

    Returns:
        The new appointment, linked through rescheduled_from
    """
    entry = timeline.append(
        appointment, 'rescheduled', reason, actor,
        reference=f"{slot_date}T{slot_time}",
        now=now,
    )
    if entry.replayed:
        return Appointment.objects.get(rescheduled_from=appointment)
    replacement = create_appointment(
        appointment.doctor_id,
        appointment.patient_id,
        slot_date,
        slot_time,
        hospital_id=appointment.hospital_id,
        appointment_type=appointment.appointment_type,
        source=appointment.source,
        duration_minutes=appointment.duration_minutes,
        reason=appointment.reason,
        amount=appointment.amount,
        rescheduled_from=appointment,
        actor=actor,
        metadata=dict(appointment.metadata or {}),
        now=now,
    )
    logger.info("Appointment %s rescheduled as %s", appointment.number, replacement.number)
    return replacement
