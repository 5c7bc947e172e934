import pytz
from django.conf import settings


CALENDAR_TIMEZONE_SETTING = 'fasting_time_zone'


def _lookup(tz_name, fallback=pytz.UTC):
    try:
        return pytz.timezone(tz_name)
    except pytz.exceptions.UnknownTimeZoneError:
        return fallback


def get_user_timezone(request):
    """
    Get the user's timezone from the cookie set by JavaScript.
    Falls back to the calendar timezone if no cookie is set.
    """
    user_tz_name = request.COOKIES.get('user_timezone')
    if not user_tz_name:
        return get_calendar_timezone()
    return _lookup(user_tz_name)


def get_calendar_timezone():
    """
    Timezone whose calendar days streaks are counted in.

    Checks the `fasting_time_zone` Setting first, then FASTING_TIME_ZONE,
    then Django's TIME_ZONE.
    """
    from settings.models import Setting

    default_name = getattr(settings, 'FASTING_TIME_ZONE', None) or settings.TIME_ZONE
    tz_name = Setting.get(CALENDAR_TIMEZONE_SETTING, default_name)
    return _lookup(tz_name, fallback=_lookup(default_name))


def get_configured_timezone():
    """FASTING_TIME_ZONE from Django settings, without touching the database."""
    default_name = getattr(settings, 'FASTING_TIME_ZONE', None) or settings.TIME_ZONE
    return _lookup(default_name)


def local_date(instant, tz):
    """
    Calendar date of an aware datetime in the given timezone.

    At 11 PM in Los Angeles it is already 7 AM the next day in UTC; this
    returns the Los Angeles date.
    """
    return instant.astimezone(tz).date()
