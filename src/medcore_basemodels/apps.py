"""Django app configuration for medcore-basemodels."""

from django.apps import AppConfig


class MedcoreBasemodelsConfig(AppConfig):
    """App configuration for medcore-basemodels."""

    name = 'medcore_basemodels'
    verbose_name = 'Medcore Base Models'
    default_auto_field = 'django.db.models.BigAutoField'
