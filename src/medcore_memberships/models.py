"""Membership and benefit-usage models."""

from django.db import models
from django.db.models import F, Q

from medcore_basemodels.models import BaseModel
from medcore_basemodels.validators import validate_extension_map
from medcore_timeline.models import TimelineModel


class MembershipSource(models.TextChoices):
    APP = 'app', 'App'
    WEB = 'web', 'Web'
    PHONE = 'phone', 'Phone'
    IN_STORE = 'in_store', 'In store'


class Membership(BaseModel, TimelineModel):
    """
    A patient's subscription to a membership plan.

    The plan is copied into plan_snapshot at creation so later plan edits
    do not change what the member bought. family_members holds
    {member_id, relationship, added_at, is_active} entries; removals only
    flip is_active.
    """

    timeline_entity_type = 'membership'
    payment_entity_type = 'membership'

    number = models.CharField(
        max_length=32,
        unique=True,
        help_text="Document number, e.g. MEM2506010001",
    )
    patient_id = models.CharField(max_length=64, db_index=True)
    plan_code = models.CharField(max_length=32, db_index=True)
    plan_snapshot = models.JSONField(default=dict)

    start_date = models.DateField()
    end_date = models.DateField(db_index=True)
    auto_renew = models.BooleanField(default=False)
    source = models.CharField(
        max_length=10,
        choices=MembershipSource.choices,
        default=MembershipSource.APP,
    )

    family_members = models.JSONField(default=list, blank=True)
    renewal_history = models.JSONField(default=list, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    metadata = models.JSONField(default=dict, blank=True, validators=[validate_extension_map])

    class Meta:
        app_label = 'medcore_memberships'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.number} {self.plan_code} ({self.status})"

    @property
    def active_family_members(self) -> list[dict]:
        return [m for m in self.family_members or [] if m.get('is_active', True)]


class MembershipBenefitUsage(BaseModel):
    """
    Usage counter for one benefit of one membership.

    used_count is lifetime usage, month_count usage since the last monthly
    reset. Neither may pass its limit (None means unlimited); the database
    enforces both.
    """

    membership = models.ForeignKey(
        Membership,
        on_delete=models.CASCADE,
        related_name='benefit_usage',
    )
    benefit_type = models.CharField(max_length=40)
    used_count = models.PositiveIntegerField(default=0)
    month_count = models.PositiveIntegerField(default=0)
    limit_per_month = models.PositiveIntegerField(null=True, blank=True)
    limit_total = models.PositiveIntegerField(null=True, blank=True)
    last_used_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        app_label = 'medcore_memberships'
        constraints = [
            models.UniqueConstraint(
                fields=['membership', 'benefit_type'],
                name='medcore_memberships_usage_unique_benefit',
            ),
            models.CheckConstraint(
                condition=Q(limit_total__isnull=True) | Q(used_count__lte=F('limit_total')),
                name='medcore_memberships_usage_within_total',
            ),
            models.CheckConstraint(
                condition=Q(limit_per_month__isnull=True) | Q(month_count__lte=F('limit_per_month')),
                name='medcore_memberships_usage_within_month',
            ),
        ]

    def __str__(self):
        return f"{self.benefit_type}: {self.used_count}"
