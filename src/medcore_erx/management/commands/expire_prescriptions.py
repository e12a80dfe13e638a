"""Management command to expire prescriptions past their validity."""

from django.core.management.base import BaseCommand
from django.utils import timezone

from medcore_erx.models import Prescription, PrescriptionStatus
from medcore_erx.services import expire_due


class Command(BaseCommand):
    help = 'Move signed or dispensed prescriptions past expires_at to expired'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show how many prescriptions would expire without changing them'
        )

    def handle(self, *args, **options):
        now = timezone.now()

        if options['dry_run']:
            count = Prescription.objects.filter(
                status__in=[PrescriptionStatus.SIGNED, PrescriptionStatus.DISPENSED],
                expires_at__lt=now,
            ).count()
            self.stdout.write(f'Would expire {count} prescriptions')
            return

        expired = expire_due(now)
        self.stdout.write(
            self.style.SUCCESS(f'Expired {expired} prescriptions')
        )
