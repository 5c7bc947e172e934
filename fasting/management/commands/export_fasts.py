"""
Django management command to export fasting history as CSV.

Usage:
    python manage.py export_fasts
    python manage.py export_fasts --output fasting_history.csv
"""
from django.core.management.base import BaseCommand

from fasting.services.csv_export import write_sessions_csv
from fasting.utils import get_controller


class Command(BaseCommand):
    help = 'Export completed fasts to CSV (stdout unless --output is given)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--output',
            type=str,
            help='Write to this file instead of stdout'
        )

    def handle(self, *args, **options):
        controller = get_controller()
        records = controller.history()
        output = options.get('output')

        if not output:
            write_sessions_csv(records, self.stdout, controller.default_goal_hours, controller.tz)
            return

        with open(output, 'w', newline='') as f:
            count = write_sessions_csv(records, f, controller.default_goal_hours, controller.tz)
        self.stdout.write(self.style.SUCCESS(f'Exported {count} fasts to {output}'))
