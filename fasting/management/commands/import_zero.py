"""
Django management command to import fasting data from Zero app export.

Fasts go through the same external merge as health store syncs, so a fast
already logged by hand is never duplicated and re-running the import is safe.

Usage:
    python manage.py import_zero <path_to_biodata.json>
    python manage.py import_zero import/temp/zero_data/zero-fasting-data_*/biodata.json --dry-run
"""
import os

from django.core.management.base import BaseCommand

from fasting.history import HistoryStore
from fasting.services.zero_export import ZeroExportBridge
from fasting.utils import get_controller


class Command(BaseCommand):
    help = 'Import fasting data from Zero app JSON export (biodata.json)'

    def add_arguments(self, parser):
        parser.add_argument(
            'json_file',
            type=str,
            help='Path to the biodata.json file from Zero export'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Preview what would be imported without actually importing'
        )

    def handle(self, *args, **options):
        json_file = options['json_file']
        dry_run = options['dry_run']

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No data will be imported'))

        self.stdout.write(self.style.SUCCESS('Starting Zero fasting data import...'))

        # Check if file exists
        if not os.path.exists(json_file):
            self.stdout.write(self.style.ERROR(f'File not found: {json_file}'))
            return

        bridge = ZeroExportBridge(json_file)
        try:
            self.stdout.write(f'Reading file: {json_file}')
            records = bridge.fetch_external_sessions()
        except ValueError as e:
            self.stdout.write(self.style.ERROR(str(e)))
            return

        for fast_id, reason in bridge.skipped:
            self.stdout.write(self.style.WARNING(f'Skipping fast {fast_id} - {reason}'))
        self.stdout.write(f'Found {len(records)} completed fasting sessions in file')

        controller = get_controller()

        if dry_run:
            # Merge into a throwaway copy of history to see what would happen
            preview = HistoryStore(controller.store.snapshot())
            result = preview.merge_external(records)
        else:
            result = controller.merge_external(records)

        # Summary
        self.stdout.write(self.style.SUCCESS(
            f'\n{"DRY RUN " if dry_run else ""}Import completed!'
        ))
        self.stdout.write(f'  Would create: {result.created}' if dry_run else f'  Created: {result.created}')
        self.stdout.write(f'  Skipped (already in history): {result.skipped}')
        self.stdout.write(f'  Skipped (unusable): {len(bridge.skipped)}')

        if controller.storage_warning:
            self.stdout.write(self.style.ERROR(f'Warning: {controller.storage_warning}'))

        streaks = controller.streaks()
        self.stdout.write(f'  Current streak: {streaks.current} | Longest streak: {streaks.longest}')
