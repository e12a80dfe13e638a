"""
medcore-timeline: Append-only status ledger shared by entity types.

Provides:
- TransitionTable: per-entity-type graph of legal status transitions
- TimelineModel: abstract model embedding the timeline array on its owner
- TimelineEntry: one recorded transition (status, timestamp, note, actor, amount)
- start/append services with duplicate suppression and optimistic locking
"""

__version__ = "0.1.0"
