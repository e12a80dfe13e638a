"""Management command to zero monthly benefit counters.

Run on the first of each month from cron or any scheduler.
"""

from django.core.management.base import BaseCommand

from medcore_memberships.services import reset_monthly_usage


class Command(BaseCommand):
    help = 'Reset the monthly usage counter of every membership benefit'

    def handle(self, *args, **options):
        reset = reset_monthly_usage()
        self.stdout.write(
            self.style.SUCCESS(f'Reset monthly usage on {reset} benefits')
        )
