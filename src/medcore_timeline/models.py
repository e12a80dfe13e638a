"""Timeline entry value object and the abstract model that embeds it.

The timeline lives on its owner as a JSON array so the audit trail is
written in the same UPDATE as the owner's status. `status` is a cached
copy of the last entry for filtering; the array is the source of truth.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.db import models
from django.utils.dateparse import parse_datetime

from medcore_basemodels.models import OptimisticLockModel


@dataclass(frozen=True)
class TimelineEntry:
    """One recorded status transition.

    `replayed` is set on the entry append() returns when it matched an
    earlier entry instead of writing a new one; it is never stored.
    """

    status: str
    timestamp: datetime
    note: str = ''
    actor_id: str = ''
    amount: Optional[Decimal] = None
    reference: str = ''
    replayed: bool = field(default=False, compare=False)

    def to_dict(self) -> dict:
        data = {
            'status': self.status,
            'timestamp': self.timestamp.isoformat(),
            'note': self.note,
            'actor_id': self.actor_id,
            'amount': None if self.amount is None else str(self.amount),
        }
        if self.reference:
            data['reference'] = self.reference
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'TimelineEntry':
        amount = data.get('amount')
        return cls(
            status=data['status'],
            timestamp=parse_datetime(data['timestamp']),
            note=data.get('note', ''),
            actor_id=data.get('actor_id', ''),
            amount=None if amount is None else Decimal(amount),
            reference=data.get('reference', ''),
        )


class TimelineModel(OptimisticLockModel):
    """
    Abstract owner of a status timeline.

    Subclasses set `timeline_entity_type` to pick their transition table:

        class Appointment(BaseModel, TimelineModel):
            timeline_entity_type = 'appointment'

    Never assign `status` or `timeline` directly; go through
    medcore_timeline.services.start() and append().
    """

    timeline_entity_type = None

    status = models.CharField(
        max_length=40,
        blank=True,
        db_index=True,
        help_text="Cached status of the last timeline entry",
    )
    timeline = models.JSONField(
        default=list,
        blank=True,
        help_text="Append-only list of status transitions",
    )

    class Meta:
        abstract = True

    @property
    def timeline_entries(self) -> list[TimelineEntry]:
        return [TimelineEntry.from_dict(item) for item in self.timeline or []]

    @property
    def current_status(self) -> Optional[str]:
        if not self.timeline:
            return None
        return self.timeline[-1]['status']
