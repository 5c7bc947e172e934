import logging

from fastlife.timezone_utils import get_calendar_timezone, get_user_timezone
from settings.models import Setting

from .controller import FastingController
from .notifications import DatabaseNotificationScheduler
from .persistence import DatabaseGateway
from .services.health_store_client import HealthStoreClient, connect_push

logger = logging.getLogger(__name__)

HEALTH_SYNC_KEY = 'fasting_health_sync'


def health_sync_enabled():
    """Whether stopped fasts should be pushed to the health store."""
    return Setting.get(HEALTH_SYNC_KEY, 'false').lower() in ('1', 'true', 'yes', 'on')


def set_health_sync(enabled):
    Setting.set(HEALTH_SYNC_KEY, 'true' if enabled else 'false', 'Push stopped fasts to the health store')


def get_controller(request=None):
    """
    Controller backed by the database, for one request or one command run.

    Streak days follow the request's `user_timezone` cookie when there is a
    request, otherwise the configured calendar timezone. When health sync is
    switched on and the health store is configured, every fast the controller
    stops is pushed to it.
    """
    tz = get_user_timezone(request) if request is not None else get_calendar_timezone()
    controller = FastingController.load(
        DatabaseGateway(),
        notifier=DatabaseNotificationScheduler(),
        tz=tz,
    )
    if health_sync_enabled():
        try:
            connect_push(controller, HealthStoreClient())
        except ValueError as e:
            logger.warning('Health sync is on but the health store is not configured: %s', e)
    return controller
