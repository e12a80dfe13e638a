"""Django app configuration for medcore-dispensing."""

from django.apps import AppConfig


class MedcoreDispensingConfig(AppConfig):
    """App configuration for medcore-dispensing."""

    name = 'medcore_dispensing'
    verbose_name = 'Medcore Dispensing'
    default_auto_field = 'django.db.models.BigAutoField'
