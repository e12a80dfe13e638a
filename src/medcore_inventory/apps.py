"""Django app configuration for medcore-inventory."""

from django.apps import AppConfig


class MedcoreInventoryConfig(AppConfig):
    """App configuration for medcore-inventory."""

    name = 'medcore_inventory'
    verbose_name = 'Medcore Inventory'
    default_auto_field = 'django.db.models.BigAutoField'
