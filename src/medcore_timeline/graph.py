"""
Pure function validators for transition tables.

These functions validate status graphs without any Django model lifecycle.
Used when tables are registered AND by tests directly.
"""


def validate_transition_graph(
    transitions: dict[str, list[str]],
    initial_state: str,
    terminal_states: list[str],
) -> list[str]:
    """
    Validate a status graph is sane and usable.

    Returns list of error messages (empty = valid).

    Checks:
    - initial_state has outgoing transitions or is itself terminal
    - terminal states have no outgoing transitions
    - no state transitions back into initial_state (the creation status
      only ever appears as the first timeline entry)
    - every state is reachable from initial_state
    - at least one terminal state is reachable

    Args:
        transitions: Dict mapping state -> list of reachable states
        initial_state: Creation status written as the first entry
        terminal_states: Statuses that end the timeline

    Returns:
        List of error message strings (empty if valid)
    """
    errors = []
    states = all_states(transitions, initial_state, terminal_states)

    if not initial_state:
        errors.append("initial_state is required")
    elif initial_state not in transitions and initial_state not in terminal_states:
        errors.append(f"initial_state '{initial_state}' has no outgoing transitions")

    for ts in terminal_states:
        if transitions.get(ts):
            errors.append(f"terminal state '{ts}' has outgoing transitions")

    for from_state, to_states in transitions.items():
        if initial_state in to_states:
            errors.append(f"transition from '{from_state}' back to initial_state")

    if initial_state:
        reachable = _find_reachable_states(initial_state, transitions)
        for state in sorted(states):
            if state not in reachable:
                errors.append(f"state '{state}' unreachable from initial_state")
        if terminal_states and not reachable.intersection(terminal_states):
            errors.append("no terminal state reachable from initial_state")

    return errors


def all_states(
    transitions: dict[str, list[str]],
    initial_state: str,
    terminal_states: list[str],
) -> set[str]:
    """Collect every state named anywhere in the table."""
    states = set(transitions)
    for to_states in transitions.values():
        states.update(to_states)
    states.update(terminal_states)
    if initial_state:
        states.add(initial_state)
    return states


def _find_reachable_states(start: str, transitions: dict[str, list[str]]) -> set[str]:
    """
    BFS to find all reachable states from start.

    Args:
        start: Starting state
        transitions: Dict mapping state -> list of reachable states

    Returns:
        Set of all states reachable from start (including start itself)
    """
    visited = {start}
    queue = [start]

    while queue:
        current = queue.pop(0)
        for next_state in transitions.get(current, []):
            if next_state not in visited:
                visited.add(next_state)
                queue.append(next_state)

    return visited
