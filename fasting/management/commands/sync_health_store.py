"""
Django management command to sync fasting sessions from the health store.

Usage:
    python manage.py sync_health_store [--days=30] [--all]

This command is ideal for scheduled jobs (cron, etc.)
"""
import requests

from fastlife.sync_utils import BaseSyncCommand
from fasting.services.health_store_client import HealthStoreClient
from fasting.utils import get_controller


class Command(BaseSyncCommand):
    help = 'Import completed fasts from the health store'

    source_name = 'HealthStore'

    def sync(self, since):
        self.stdout.write(self.style.SUCCESS('Starting health store fasting sync...'))

        try:
            client = HealthStoreClient()
        except ValueError as e:
            self.stdout.write(self.style.ERROR(f'Configuration error: {e}'))
            self.stdout.write(self.style.WARNING(
                '\nMake sure you have set up your health store credentials in .env file:'
            ))
            self.stdout.write('  HEALTH_STORE_URL')
            self.stdout.write('  HEALTH_STORE_TOKEN')
            return self.make_error_result(str(e))

        try:
            self.stdout.write(f'Fetching fasts since {since.strftime("%Y-%m-%d")}...')
            records = client.fetch_external_sessions(since)
        except requests.exceptions.HTTPError as e:
            auth_error = e.response is not None and e.response.status_code in (401, 403)
            self.stdout.write(self.style.ERROR(f'Error fetching fasts: {e}'))
            return self.make_error_result(str(e), auth_error=auth_error)
        except requests.exceptions.RequestException as e:
            self.stdout.write(self.style.ERROR(f'Error fetching fasts: {e}'))
            return self.make_error_result(str(e))

        self.stdout.write(f'Retrieved {len(records)} completed fasts')

        controller = get_controller()
        result = controller.merge_external(records)
        result.source = self.source_name

        if controller.storage_warning:
            self.stdout.write(self.style.ERROR(f'Warning: {controller.storage_warning}'))
        return result
