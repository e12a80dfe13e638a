"""Django app configuration for medcore-sequence."""

from django.apps import AppConfig


class MedcoreSequenceConfig(AppConfig):
    """App configuration for medcore-sequence."""

    name = 'medcore_sequence'
    verbose_name = 'Medcore Sequence'
    default_auto_field = 'django.db.models.BigAutoField'
