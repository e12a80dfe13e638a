"""Django app configuration for medcore-appointments."""

from django.apps import AppConfig


class MedcoreAppointmentsConfig(AppConfig):
    """App configuration for medcore-appointments."""

    name = 'medcore_appointments'
    verbose_name = 'Medcore Appointments'
    default_auto_field = 'django.db.models.BigAutoField'
