"""Django app configuration for medcore-payments."""

from django.apps import AppConfig


class MedcorePaymentsConfig(AppConfig):
    """App configuration for medcore-payments."""

    name = 'medcore_payments'
    verbose_name = 'Medcore Payments'
    default_auto_field = 'django.db.models.BigAutoField'
