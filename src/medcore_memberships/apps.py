"""Django app configuration for medcore-memberships."""

from django.apps import AppConfig


class MedcoreMembershipsConfig(AppConfig):
    """App configuration for medcore-memberships."""

    name = 'medcore_memberships'
    verbose_name = 'Medcore Memberships'
    default_auto_field = 'django.db.models.BigAutoField'
