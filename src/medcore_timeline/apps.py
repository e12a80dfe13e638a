"""Django app configuration for medcore-timeline."""

from django.apps import AppConfig


class MedcoreTimelineConfig(AppConfig):
    """Validates the built-in transition tables at startup."""

    name = "medcore_timeline"
    verbose_name = "Medcore Timeline"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        from .tables import validate_builtin_tables

        validate_builtin_tables()
