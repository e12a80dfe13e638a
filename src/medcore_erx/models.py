"""Prescription model."""

from django.db import models
from django.db.models import Q

from medcore_basemodels.models import BaseModel, OptimisticLockModel
from medcore_basemodels.validators import validate_extension_map

from .exceptions import ImmutablePrescriptionError
from .integrity import compute_hash
from .lines import LineItem


class PrescriptionStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    SIGNED = 'signed', 'Signed'
    DISPENSED = 'dispensed', 'Dispensed'
    EXPIRED = 'expired', 'Expired'
    CANCELLED = 'cancelled', 'Cancelled'


# Statuses whose clinical content is covered by `hash`
SEALED_STATUSES = frozenset({
    PrescriptionStatus.SIGNED,
    PrescriptionStatus.DISPENSED,
    PrescriptionStatus.EXPIRED,
})


class Prescription(BaseModel, OptimisticLockModel):
    """
    Electronic prescription.

    Once signed, `hash` is the digest of the clinical content at signing
    and `signature` a keyed HMAC of that hash. Clinical content only
    changes through medcore_erx.services.amend(), which bumps `version`
    and appends a revision linking to the previous hash:

        {version, changed_at, changed_by, reason,
         previous_hash, previous_content, hash}
    """

    doctor_id = models.CharField(max_length=64, db_index=True)
    patient_id = models.CharField(max_length=64, db_index=True)
    appointment_ref = models.CharField(max_length=64, blank=True, db_index=True)

    diagnosis = models.JSONField(default=list, blank=True)
    items = models.JSONField(default=list)
    notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=20,
        choices=PrescriptionStatus.choices,
        default=PrescriptionStatus.DRAFT,
        db_index=True,
    )
    version = models.PositiveIntegerField(default=1)

    hash = models.CharField(max_length=128, blank=True)
    hash_algorithm = models.CharField(max_length=20, default='sha256')
    signature = models.CharField(max_length=128, blank=True)
    signature_algorithm = models.CharField(
        max_length=20,
        blank=True,
        help_text="HMAC digest algorithm used for `signature`",
    )
    signed_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)
    dispensed_at = models.DateTimeField(null=True, blank=True)

    revisions = models.JSONField(default=list, blank=True)
    cancelled_reason = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True, validators=[validate_extension_map])

    class Meta:
        app_label = 'medcore_erx'
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(version__gte=1),
                name='medcore_erx_prescription_version_gte_1',
            ),
        ]

    def __str__(self):
        return f"Rx {self.pk} v{self.version} ({self.status})"

    @property
    def line_items(self) -> list[LineItem]:
        return [LineItem.from_dict(item) for item in self.items or []]

    def get_line(self, line_id: str):
        for line in self.line_items:
            if line.line_id == line_id:
                return line
        return None

    def save(self, *args, **kwargs):
        """Refuse to persist sealed content that no longer matches its hash."""
        if self.status in SEALED_STATUSES and self.hash:
            if compute_hash(self) != self.hash:
                raise ImmutablePrescriptionError(
                    f"Prescription {self.pk} is {self.status}; clinical content "
                    "can only change through amend()"
                )
        super().save(*args, **kwargs)
