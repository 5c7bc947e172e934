from datetime import datetime, timedelta, timezone as dt_timezone

import pytz

from fasting.controller import FastingController
from fasting.persistence import InMemoryGateway
from fasting.records import SessionRecord


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=dt_timezone.utc)


def closed(start, hours, goal_hours=None, **kwargs):
    return SessionRecord(start_time=start, end_time=start + timedelta(hours=hours), goal_hours=goal_hours, **kwargs)


class FixedClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


def make_controller(now=None, records=(), gateway=None, **kwargs):
    clock = kwargs.pop('clock', None) or FixedClock(now or utc(2025, 3, 10, 12))
    gateway = gateway or InMemoryGateway(sessions=records)
    kwargs.setdefault('tz', pytz.UTC)
    kwargs.setdefault('default_goal_hours', 16)
    controller = FastingController.load(gateway, clock=clock, **kwargs)
    return controller, clock, gateway
