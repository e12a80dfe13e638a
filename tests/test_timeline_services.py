"""Tests for timeline appends."""
from datetime import date, time, timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.db import OperationalError

from medcore_basemodels.exceptions import StaleVersionError
from medcore_timeline import services as timeline
from medcore_timeline.exceptions import (
    InvalidTransition,
    TimelineAlreadyStarted,
    TimelineContention,
    TimelineNotStarted,
    UnknownEntityType,
)
from medcore_timeline.models import TimelineEntry


@pytest.fixture
def appointment(now):
    from medcore_appointments.services import create_appointment

    return create_appointment('DR1', 'PT1', date(2025, 6, 3), time(10, 30), now=now)


class TestTimelineEntry:
    """Serialization of entries stored in the JSON array."""

    def test_round_trip_keeps_amount_and_reference(self, now):
        entry = TimelineEntry('captured', now, note='ok', actor_id='7', amount=Decimal('10.50'), reference='R1')
        assert TimelineEntry.from_dict(entry.to_dict()) == entry

    def test_reference_omitted_when_empty(self, now):
        data = TimelineEntry('created', now).to_dict()
        assert 'reference' not in data
        assert data['amount'] is None


@pytest.mark.django_db
class TestStart:
    """start() writes the creation entry."""

    def test_created_entry_written_with_number(self, appointment):
        assert appointment.number == 'APT2506010001'
        assert appointment.status == 'created'
        assert [e.status for e in appointment.timeline_entries] == ['created']

    def test_start_twice_is_refused(self, appointment):
        with pytest.raises(TimelineAlreadyStarted):
            timeline.start(appointment)

    def test_entity_without_table(self):
        with pytest.raises(UnknownEntityType):
            timeline.start(mock.Mock(timeline_entity_type=None, timeline=[]))


@pytest.mark.django_db
class TestAppend:
    """append() validates against the table and records the audit trail."""

    def test_legal_transition_appends(self, appointment):
        entry = timeline.append(appointment, 'confirmed', 'phone confirmed', actor='NURSE1')

        assert entry.status == 'confirmed'
        assert entry.actor_id == 'NURSE1'
        assert appointment.status == 'confirmed'
        assert appointment.lock_version == 1

        appointment.refresh_from_db()
        assert [e.status for e in appointment.timeline_entries] == ['created', 'confirmed']
        assert appointment.timeline[-1]['note'] == 'phone confirmed'

    def test_illegal_transition_is_rejected_and_nothing_written(self, appointment):
        with pytest.raises(InvalidTransition) as exc_info:
            timeline.append(appointment, 'completed')

        assert exc_info.value.from_state == 'created'
        assert exc_info.value.to_state == 'completed'
        appointment.refresh_from_db()
        assert appointment.status == 'created'
        assert len(appointment.timeline) == 1

    def test_unknown_status_is_rejected(self, appointment):
        with pytest.raises(InvalidTransition):
            timeline.append(appointment, 'teleported')

    def test_terminal_status_has_no_exit(self, appointment):
        timeline.append(appointment, 'cancelled')
        with pytest.raises(InvalidTransition):
            timeline.append(appointment, 'confirmed')

    def test_validates_against_stored_status_not_instance(self, appointment):
        from medcore_appointments.models import Appointment

        other = Appointment.objects.get(pk=appointment.pk)
        timeline.append(other, 'cancelled')

        with pytest.raises(InvalidTransition):
            timeline.append(appointment, 'confirmed')

    def test_duplicate_within_window_is_suppressed(self, appointment, now):
        first = timeline.append(appointment, 'confirmed', now=now)
        second = timeline.append(appointment, 'confirmed', now=now + timedelta(seconds=2))

        assert second == first
        assert first.replayed is False
        assert second.replayed is True
        appointment.refresh_from_db()
        assert len(appointment.timeline) == 2
        assert 'replayed' not in appointment.timeline[-1]

    def test_repeat_outside_window_is_validated(self, appointment, now):
        timeline.append(appointment, 'confirmed', now=now)
        with pytest.raises(InvalidTransition):
            timeline.append(appointment, 'confirmed', now=now + timedelta(seconds=10))

    def test_dedupe_disabled(self, appointment, now):
        timeline.append(appointment, 'confirmed', now=now)
        with pytest.raises(InvalidTransition):
            timeline.append(appointment, 'confirmed', now=now, dedupe=False)

    def test_changes_written_in_same_update(self, appointment):
        timeline.append(appointment, 'confirmed', changes={'reason': 'follow-up'})

        appointment.refresh_from_db()
        assert appointment.reason == 'follow-up'
        assert appointment.status == 'confirmed'

    def test_changes_from_stale_instance_are_refused(self, appointment):
        from medcore_appointments.models import Appointment

        other = Appointment.objects.get(pk=appointment.pk)
        timeline.append(other, 'confirmed')

        with pytest.raises(StaleVersionError):
            timeline.append(appointment, 'checked_in', changes={'reason': 'stale'})

        appointment.refresh_from_db()
        assert appointment.reason == ''

    def test_not_started(self, appointment):
        from medcore_appointments.models import Appointment

        Appointment.objects.filter(pk=appointment.pk).update(timeline=[])
        with pytest.raises(TimelineNotStarted):
            timeline.append(appointment, 'confirmed')

    def test_lock_contention_gives_up(self, appointment, settings):
        settings.MEDCORE_TIMELINE_MAX_ATTEMPTS = 2
        with mock.patch(
            'medcore_timeline.services.apply_lock_timeout',
            side_effect=OperationalError('database is locked'),
        ):
            with pytest.raises(TimelineContention) as exc_info:
                timeline.append(appointment, 'confirmed')

        assert exc_info.value.attempts == 2
        assert exc_info.value.retryable is True

    def test_append_by_id(self, appointment):
        from medcore_appointments.models import Appointment

        timeline.append_by_id(Appointment, appointment.pk, 'confirmed', 'via api')

        appointment.refresh_from_db()
        assert appointment.status == 'confirmed'

    def test_read_helpers(self, appointment):
        assert timeline.current_status(appointment) == 'created'
        assert set(timeline.allowed_transitions(appointment)) == {
            'payment_pending', 'confirmed', 'cancelled', 'no_show', 'rescheduled',
        }
        assert [e.status for e in timeline.entries(appointment)] == ['created']
