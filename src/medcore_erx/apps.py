"""Django app configuration for medcore-erx."""

from django.apps import AppConfig


class MedcoreErxConfig(AppConfig):
    """App configuration for medcore-erx."""

    name = "medcore_erx"
    verbose_name = "Medcore eRx"
    default_auto_field = "django.db.models.BigAutoField"
