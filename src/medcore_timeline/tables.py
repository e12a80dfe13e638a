"""Transition tables for timeline-owning entity types.

Each entity type declares which status may follow which. "Interrupt"
statuses (cancelled, no_show, ...) are expanded onto every state listed as
interruptible, so the table stays explicit once built.

Tables can be replaced per deployment through MEDCORE_TIMELINE_TABLES;
overrides are validated with the same graph checks as the built-ins.
"""

from dataclasses import dataclass, field

from django.core.exceptions import ImproperlyConfigured

from .conf import get_setting
from .exceptions import UnknownEntityType
from .graph import all_states, validate_transition_graph


@dataclass(frozen=True)
class TransitionTable:
    """Legal status graph for one entity type."""

    entity_type: str
    initial_state: str
    transitions: dict = field(default_factory=dict)
    terminal_states: frozenset = frozenset()

    @property
    def states(self) -> set[str]:
        return all_states(self.transitions, self.initial_state, list(self.terminal_states))

    def allowed_from(self, status: str) -> list[str]:
        """Statuses that may directly follow `status`."""
        if status in self.terminal_states:
            return []
        return list(self.transitions.get(status, []))

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal_states

    def validate(self) -> list[str]:
        return validate_transition_graph(
            transitions=self.transitions,
            initial_state=self.initial_state,
            terminal_states=list(self.terminal_states),
        )


def build_table(
    entity_type: str,
    initial_state: str,
    transitions: dict,
    terminal_states,
    interrupts=(),
    interruptible=None,
) -> TransitionTable:
    """
    Build a TransitionTable, expanding interrupt statuses.

    Args:
        entity_type: Entity type key, e.g. 'appointment'
        initial_state: Creation status
        transitions: Dict mapping state -> list of next states
        terminal_states: Statuses that end the timeline
        interrupts: Statuses reachable from every interruptible state
        interruptible: States that accept interrupts; defaults to every
            non-terminal state
    """
    terminal = frozenset(terminal_states)
    expanded = {state: list(targets) for state, targets in transitions.items()}

    if interruptible is None:
        interruptible = [
            s for s in all_states(expanded, initial_state, list(terminal))
            if s not in terminal and s not in interrupts
        ]

    for state in interruptible:
        targets = expanded.setdefault(state, [])
        for interrupt in interrupts:
            if interrupt not in targets:
                targets.append(interrupt)

    return TransitionTable(
        entity_type=entity_type,
        initial_state=initial_state,
        transitions={state: tuple(targets) for state, targets in expanded.items()},
        terminal_states=terminal,
    )


APPOINTMENT_TABLE = build_table(
    'appointment',
    initial_state='created',
    transitions={
        'created': ['payment_pending', 'confirmed'],
        'payment_pending': ['payment_successful', 'payment_failed', 'confirmed'],
        'payment_failed': ['payment_pending'],
        'payment_successful': ['confirmed'],
        'confirmed': ['reminder_sent', 'checked_in'],
        'reminder_sent': ['checked_in'],
        'checked_in': ['in_progress'],
        'in_progress': ['completed'],
    },
    terminal_states=['completed', 'cancelled', 'no_show', 'rescheduled'],
    interrupts=('cancelled', 'no_show', 'rescheduled'),
)

PAYMENT_TABLE = build_table(
    'payment',
    initial_state='initiated',
    transitions={
        'initiated': ['pending', 'authorized'],
        'pending': ['authorized'],
        'authorized': ['captured'],
        'captured': ['partially_refunded', 'refunded'],
        'partially_refunded': ['partially_refunded', 'refunded'],
    },
    terminal_states=['refunded', 'failed', 'cancelled'],
    interrupts=('failed', 'cancelled'),
)

MEMBERSHIP_ACTIVE_STATES = ('active', 'renewed', 'member_added', 'member_removed')

MEMBERSHIP_TABLE = build_table(
    'membership',
    initial_state='created',
    transitions={
        'created': ['payment_pending', 'active'],
        'payment_pending': ['payment_successful', 'payment_failed'],
        'payment_failed': ['payment_pending'],
        'payment_successful': ['active'],
        **{
            state: ['renewed', 'member_added', 'member_removed', 'expired']
            for state in MEMBERSHIP_ACTIVE_STATES
        },
    },
    terminal_states=['cancelled', 'expired'],
    interrupts=('cancelled',),
)

BUILTIN_TABLES = {
    table.entity_type: table
    for table in (APPOINTMENT_TABLE, PAYMENT_TABLE, MEMBERSHIP_TABLE)
}


def _table_from_setting(entity_type: str, definition: dict) -> TransitionTable:
    try:
        table = build_table(
            entity_type,
            initial_state=definition['initial_state'],
            transitions=definition['transitions'],
            terminal_states=definition.get('terminal_states', []),
            interrupts=tuple(definition.get('interrupts', ())),
            interruptible=definition.get('interruptible'),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise ImproperlyConfigured(
            f"MEDCORE_TIMELINE_TABLES['{entity_type}'] is malformed: {exc}"
        )

    errors = table.validate()
    if errors:
        raise ImproperlyConfigured(
            f"MEDCORE_TIMELINE_TABLES['{entity_type}'] is invalid: " + "; ".join(errors)
        )
    return table


def get_table(entity_type: str) -> TransitionTable:
    """
    Return the transition table for an entity type.

    Raises:
        UnknownEntityType: If no table is registered for entity_type
        ImproperlyConfigured: If a settings override is invalid
    """
    overrides = get_setting('TABLES', {}) or {}
    if entity_type in overrides:
        return _table_from_setting(entity_type, overrides[entity_type])

    try:
        return BUILTIN_TABLES[entity_type]
    except KeyError:
        raise UnknownEntityType(entity_type)


def validate_builtin_tables() -> None:
    """Fail fast at startup if a built-in table is not a sane graph."""
    for entity_type, table in BUILTIN_TABLES.items():
        errors = table.validate()
        if errors:
            raise ImproperlyConfigured(
                f"Built-in transition table '{entity_type}' is invalid: " + "; ".join(errors)
            )
