"""Appointment model."""

from django.db import models

from medcore_basemodels.models import BaseModel
from medcore_basemodels.validators import validate_extension_map
from medcore_timeline.models import TimelineModel


class AppointmentType(models.TextChoices):
    IN_PERSON = 'in_person', 'In person'
    TELEMEDICINE = 'telemedicine', 'Telemedicine'
    HOME_VISIT = 'home_visit', 'Home visit'


class BookingSource(models.TextChoices):
    APP = 'app', 'App'
    WEB = 'web', 'Web'
    PHONE = 'phone', 'Phone'
    WALK_IN = 'walk_in', 'Walk-in'


class Appointment(BaseModel, TimelineModel):
    """
    A booked consultation slot.

    Created through medcore_appointments.services.create_appointment(),
    which allocates the APT number and writes the 'created' entry in the
    same INSERT.
    """

    timeline_entity_type = 'appointment'
    payment_entity_type = 'appointment'

    number = models.CharField(
        max_length=32,
        unique=True,
        help_text="Document number, e.g. APT2506010001",
    )
    doctor_id = models.CharField(max_length=64, db_index=True)
    patient_id = models.CharField(max_length=64, db_index=True)
    hospital_id = models.CharField(max_length=64, blank=True)

    appointment_type = models.CharField(
        max_length=20,
        choices=AppointmentType.choices,
        default=AppointmentType.IN_PERSON,
    )
    source = models.CharField(
        max_length=10,
        choices=BookingSource.choices,
        default=BookingSource.APP,
    )
    slot_date = models.DateField(db_index=True)
    slot_time = models.TimeField()
    duration_minutes = models.PositiveIntegerField(default=15)
    reason = models.TextField(blank=True)
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Consultation fee; None for free appointments",
    )

    rescheduled_from = models.OneToOneField(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='rescheduled_to',
    )
    metadata = models.JSONField(default=dict, blank=True, validators=[validate_extension_map])

    class Meta:
        app_label = 'medcore_appointments'
        ordering = ['slot_date', 'slot_time']
        indexes = [
            models.Index(fields=['doctor_id', 'slot_date']),
        ]

    def __str__(self):
        return f"{self.number} {self.slot_date} {self.slot_time} ({self.status})"
