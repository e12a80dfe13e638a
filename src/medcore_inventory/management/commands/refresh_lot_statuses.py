"""Management command to recompute the cached status of inventory lots."""

from django.core.management.base import BaseCommand

from medcore_inventory.services import refresh_statuses


class Command(BaseCommand):
    help = 'Recompute cached lot statuses (expiry moves lots without any write)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--pharmacy',
            default=None,
            help='Only refresh lots held by this pharmacy id'
        )

    def handle(self, *args, **options):
        changed = refresh_statuses(pharmacy_id=options['pharmacy'])
        self.stdout.write(
            self.style.SUCCESS(f'Refreshed {changed} lot statuses')
        )
