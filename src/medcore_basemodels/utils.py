"""Utility helpers for medcore packages."""

from datetime import date, datetime

from django.utils import timezone


def actor_ref(actor) -> str:
    """Normalise an actor to a string id.

    Authentication lives outside the core, so actors arrive as user
    instances, raw ids, or None for system actions.
    """
    if actor is None:
        return ''
    if hasattr(actor, 'pk'):
        return str(actor.pk)
    return str(actor)


def as_date(value=None) -> date:
    """Coerce None, a datetime or a date to a local calendar date."""
    if value is None:
        return timezone.localdate()
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localdate(value)
        return value.date()
    return value
