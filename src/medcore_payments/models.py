"""Payment model."""

from decimal import Decimal

from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models
from django.db.models import F, Q

from medcore_basemodels.models import BaseModel
from medcore_basemodels.validators import validate_extension_map
from medcore_money import Money
from medcore_timeline.models import TimelineModel


class PaymentStatus(models.TextChoices):
    INITIATED = 'initiated', 'Initiated'
    PENDING = 'pending', 'Pending'
    AUTHORIZED = 'authorized', 'Authorized'
    CAPTURED = 'captured', 'Captured'
    PARTIALLY_REFUNDED = 'partially_refunded', 'Partially refunded'
    REFUNDED = 'refunded', 'Refunded'
    FAILED = 'failed', 'Failed'
    CANCELLED = 'cancelled', 'Cancelled'


class PaymentEntityType(models.TextChoices):
    ORDER = 'order', 'Order'
    APPOINTMENT = 'appointment', 'Appointment'
    SUBSCRIPTION = 'subscription', 'Subscription'
    MEMBERSHIP = 'membership', 'Membership'
    OTHER = 'other', 'Other'


class Payment(BaseModel, TimelineModel):
    """
    A payment for one owning entity.

    `status` and `timeline` come from TimelineModel and only change
    through medcore_payments.services. refund_amount <= amount is enforced
    by the database as well as by refund().
    """

    timeline_entity_type = 'payment'

    number = models.CharField(
        max_length=32,
        unique=True,
        help_text="Document number, e.g. PAY2506010001",
    )

    entity_type = models.CharField(max_length=20, choices=PaymentEntityType.choices)
    entity_ref = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Owner reference (document number or id)",
    )
    entity_content_type = models.ForeignKey(
        ContentType,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
    )
    entity_id = models.CharField(max_length=64, blank=True)
    owner = GenericForeignKey('entity_content_type', 'entity_id')

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='INR')
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))

    payment_method = models.CharField(max_length=30, blank=True)
    gateway_ref = models.CharField(max_length=100, blank=True)
    captured_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    retry_count = models.PositiveIntegerField(default=0)
    last_retry_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)

    metadata = models.JSONField(default=dict, blank=True, validators=[validate_extension_map])

    class Meta:
        app_label = 'medcore_payments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['entity_type', 'entity_ref']),
            models.Index(fields=['entity_content_type', 'entity_id']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='medcore_payments_amount_gt_0',
            ),
            models.CheckConstraint(
                condition=Q(refund_amount__gte=0),
                name='medcore_payments_refund_gte_0',
            ),
            models.CheckConstraint(
                condition=Q(refund_amount__lte=F('amount')),
                name='medcore_payments_refund_lte_amount',
            ),
        ]

    def __str__(self):
        return f"{self.number} {self.amount} {self.currency} ({self.status})"

    @property
    def money(self) -> Money:
        return Money(self.amount, self.currency)

    @property
    def refunded(self) -> Money:
        return Money(self.refund_amount, self.currency)

    @property
    def refundable(self) -> Money:
        return (self.money - self.refunded).quantized()
