"""Reusable abstract base models for medcore packages.

This module provides:
- TimeStampedModel: Automatic created_at/updated_at timestamps
- UUIDModel: UUID primary key instead of auto-increment
- BaseModel: UUID primary key + timestamps (recommended default)
- OptimisticLockModel: lock_version column with compare-and-swap writes

Usage:
    from medcore_basemodels.models import BaseModel, OptimisticLockModel

    class InventoryLot(BaseModel, OptimisticLockModel):
        quantity = models.PositiveIntegerField()

    lot.cas_update(quantity=10)  # raises StaleVersionError if someone wrote first
"""
import uuid

from django.db import models
from django.utils import timezone

from medcore_basemodels.exceptions import StaleVersionError


class TimeStampedModel(models.Model):
    """Abstract base model with created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UUIDModel(models.Model):
    """Abstract base model with UUID primary key.

    Document numbers are the human-facing identifiers; primary keys stay
    opaque so they cannot be guessed or enumerated.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class BaseModel(UUIDModel, TimeStampedModel):
    """Standard base model: UUID primary key plus timestamps.

    Clinical and financial records are never soft deleted; superseding
    records (reversals, returns, revisions) replace deletion.
    """

    class Meta:
        abstract = True


class OptimisticLockModel(models.Model):
    """Abstract model guarded by a monotonically increasing lock_version.

    Writers read the row, compute the new state, then call cas_update().
    The UPDATE only matches when lock_version is unchanged, so two writers
    that read the same version cannot both succeed.
    """

    lock_version = models.PositiveIntegerField(
        default=0,
        help_text="Row version for optimistic concurrency control",
    )

    class Meta:
        abstract = True

    def cas_update(self, **fields):
        """Write fields if the row is still at the version this instance holds.

        Updates the instance in place on success.

        Raises:
            StaleVersionError: Another writer bumped lock_version first.
        """
        model = type(self)
        expected = self.lock_version

        if any(f.name == 'updated_at' for f in model._meta.concrete_fields):
            fields.setdefault('updated_at', timezone.now())

        updated = model._base_manager.filter(
            pk=self.pk,
            lock_version=expected,
        ).update(lock_version=expected + 1, **fields)

        if not updated:
            raise StaleVersionError(model.__name__, self.pk, expected)

        for name, value in fields.items():
            setattr(self, name, value)
        self.lock_version = expected + 1
