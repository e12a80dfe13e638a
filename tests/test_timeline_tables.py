"""Tests for transition tables and the graph sanity checks."""
import pytest
from django.core.exceptions import ImproperlyConfigured

from medcore_timeline.exceptions import UnknownEntityType
from medcore_timeline.graph import all_states, validate_transition_graph
from medcore_timeline.tables import (
    APPOINTMENT_TABLE,
    BUILTIN_TABLES,
    MEMBERSHIP_TABLE,
    PAYMENT_TABLE,
    build_table,
    get_table,
)


class TestValidateTransitionGraph:
    """validate_transition_graph() is a pure function."""

    def test_valid_graph(self):
        errors = validate_transition_graph(
            transitions={'created': ['active'], 'active': ['closed']},
            initial_state='created',
            terminal_states=['closed'],
        )
        assert errors == []

    def test_terminal_with_exits(self):
        errors = validate_transition_graph(
            transitions={'created': ['closed'], 'closed': ['created2']},
            initial_state='created',
            terminal_states=['closed'],
        )
        assert any("terminal state 'closed'" in e for e in errors)

    def test_unreachable_state(self):
        errors = validate_transition_graph(
            transitions={'created': ['closed'], 'orphan': ['closed']},
            initial_state='created',
            terminal_states=['closed'],
        )
        assert "state 'orphan' unreachable from initial_state" in errors

    def test_loop_back_to_initial_state(self):
        errors = validate_transition_graph(
            transitions={'created': ['active'], 'active': ['created', 'closed']},
            initial_state='created',
            terminal_states=['closed'],
        )
        assert "transition from 'active' back to initial_state" in errors

    def test_initial_state_without_exits(self):
        errors = validate_transition_graph(
            transitions={'active': ['closed']},
            initial_state='created',
            terminal_states=['closed'],
        )
        assert "initial_state 'created' has no outgoing transitions" in errors

    def test_all_states(self):
        states = all_states({'a': ['b']}, 'a', ['c'])
        assert states == {'a', 'b', 'c'}


class TestBuiltinTables:
    """The shipped appointment, payment and membership tables."""

    @pytest.mark.parametrize('entity_type', sorted(BUILTIN_TABLES))
    def test_builtin_tables_are_valid(self, entity_type):
        assert BUILTIN_TABLES[entity_type].validate() == []

    def test_interrupts_are_expanded(self):
        assert 'cancelled' in APPOINTMENT_TABLE.allowed_from('created')
        assert 'no_show' in APPOINTMENT_TABLE.allowed_from('reminder_sent')
        assert 'rescheduled' in APPOINTMENT_TABLE.allowed_from('checked_in')

    def test_terminal_states_have_no_exits(self):
        for status in ('completed', 'cancelled', 'no_show', 'rescheduled'):
            assert APPOINTMENT_TABLE.allowed_from(status) == []
            assert APPOINTMENT_TABLE.is_terminal(status)

    def test_payment_interrupts_reach_every_open_state(self):
        assert sorted(PAYMENT_TABLE.allowed_from('captured')) == [
            'cancelled', 'failed', 'partially_refunded', 'refunded',
        ]
        for status in ('initiated', 'pending', 'authorized', 'partially_refunded'):
            assert 'failed' in PAYMENT_TABLE.allowed_from(status)
            assert 'cancelled' in PAYMENT_TABLE.allowed_from(status)
        assert PAYMENT_TABLE.allowed_from('refunded') == []
        assert 'partially_refunded' in PAYMENT_TABLE.allowed_from('partially_refunded')

    def test_membership_active_states(self):
        for status in ('active', 'renewed', 'member_added', 'member_removed'):
            allowed = MEMBERSHIP_TABLE.allowed_from(status)
            assert 'expired' in allowed
            assert 'cancelled' in allowed
        assert MEMBERSHIP_TABLE.allowed_from('expired') == []

    def test_build_table_limits_interrupts(self):
        table = build_table(
            'ticket',
            initial_state='open',
            transitions={'open': ['working'], 'working': ['done']},
            terminal_states=['done', 'dropped'],
            interrupts=('dropped',),
            interruptible=('open',),
        )
        assert 'dropped' in table.allowed_from('open')
        assert 'dropped' not in table.allowed_from('working')


class TestGetTable:
    """Lookup with settings overrides."""

    def test_unknown_entity_type(self):
        with pytest.raises(UnknownEntityType):
            get_table('invoice')

    def test_builtin_lookup(self):
        assert get_table('payment') is PAYMENT_TABLE

    def test_settings_override(self, settings):
        settings.MEDCORE_TIMELINE_TABLES = {
            'appointment': {
                'initial_state': 'created',
                'transitions': {'created': ['confirmed'], 'confirmed': ['completed']},
                'terminal_states': ['completed', 'cancelled'],
                'interrupts': ['cancelled'],
            },
        }
        table = get_table('appointment')

        assert table.allowed_from('created') == ['confirmed', 'cancelled']
        assert 'checked_in' not in table.states

    def test_invalid_override_is_improperly_configured(self, settings):
        settings.MEDCORE_TIMELINE_TABLES = {
            'appointment': {
                'initial_state': 'created',
                'transitions': {'created': ['done'], 'done': ['created']},
                'terminal_states': ['done'],
            },
        }
        with pytest.raises(ImproperlyConfigured):
            get_table('appointment')

    def test_malformed_override_is_improperly_configured(self, settings):
        settings.MEDCORE_TIMELINE_TABLES = {'appointment': {'transitions': {}}}
        with pytest.raises(ImproperlyConfigured):
            get_table('appointment')
