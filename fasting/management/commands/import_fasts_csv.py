"""
Django management command to import fasting history from a CSV export.

Rows go through the same external merge as health store syncs, so a fast
already in history is skipped and re-running the import is safe. Naive times
are read in the calendar timezone.

Usage:
    python manage.py import_fasts_csv <path_to_csv>
    python manage.py import_fasts_csv fasting_history.csv --dry-run
"""
import os

from django.core.management.base import BaseCommand

from fasting.history import HistoryStore
from fasting.services.csv_export import CSVImportBridge
from fasting.utils import get_controller


class Command(BaseCommand):
    help = 'Import fasting history from a CSV file'

    def add_arguments(self, parser):
        parser.add_argument(
            'csv_file',
            type=str,
            help='Path to the CSV file'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Preview what would be imported without actually importing'
        )

    def handle(self, *args, **options):
        csv_file = options['csv_file']
        dry_run = options['dry_run']

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No data will be imported'))

        if not os.path.exists(csv_file):
            self.stdout.write(self.style.ERROR(f'File not found: {csv_file}'))
            return

        controller = get_controller()
        bridge = CSVImportBridge(csv_file, controller.tz)
        try:
            records = bridge.fetch_external_sessions()
        except ValueError as e:
            self.stdout.write(self.style.ERROR(str(e)))
            return

        for row_no, reason in bridge.skipped:
            self.stdout.write(self.style.WARNING(f'Skipping row {row_no} - {reason}'))
        self.stdout.write(f'Found {len(records)} completed fasts in file')

        if dry_run:
            preview = HistoryStore(controller.store.snapshot())
            result = preview.merge_external(records)
        else:
            result = controller.merge_external(records)

        self.stdout.write(self.style.SUCCESS(
            f'\n{"DRY RUN " if dry_run else ""}Import completed!'
        ))
        self.stdout.write(f'  Would create: {result.created}' if dry_run else f'  Created: {result.created}')
        self.stdout.write(f'  Skipped (already in history): {result.skipped}')
        self.stdout.write(f'  Skipped (unusable): {len(bridge.skipped)}')

        if controller.storage_warning:
            self.stdout.write(self.style.ERROR(f'Warning: {controller.storage_warning}'))
