"""
Streak Engine: derives the goal-met day streaks from fasting history.

A fast counts toward the calendar day (in the user's timezone) on which it
ended. Only completed fasts that reached their goal count; a running fast
never does, even once it has passed its goal.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from fastlife.timezone_utils import local_date

from .records import DEFAULT_GOAL_HOURS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakState:
    current: int = 0
    longest: int = 0


def goal_met_days(records, default_goal_hours, tz):
    """Set of local dates on which at least one completed fast met its goal."""
    days = set()
    for record in records:
        if record.is_complete and not record.has_valid_interval:
            logger.warning('Ignoring fast %s with end time at or before its start', record.id)
            continue
        if record.met_goal(default_goal_hours):
            days.add(local_date(record.end_time, tz))
    return days


def completed_days(records, tz):
    """Set of local dates on which any valid completed fast ended."""
    return {
        local_date(r.end_time, tz)
        for r in records
        if r.is_complete and r.has_valid_interval
    }


def longest_run(days):
    """Length of the longest run of consecutive dates in `days`."""
    best = 0
    for day in days:
        # Only start counting at the first day of a run
        if day - timedelta(days=1) in days:
            continue
        length = 1
        while day + timedelta(days=length) in days:
            length += 1
        best = max(best, length)
    return best


def current_run(met_days, closed_days, today):
    """
    Consecutive goal-met days counted backward from today.

    If today has no completed fast yet, counting starts from yesterday so a
    fast still in progress does not break the streak. A completed fast today
    that missed its goal does break it.
    """
    if today in met_days:
        day = today
    elif today not in closed_days and today - timedelta(days=1) in met_days:
        day = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while day in met_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def daily_goal_status(records, default_goal_hours, tz, start, end):
    """
    Per-day goal-met status between two local dates, inclusive, oldest first.

    Returns a list of (date, met) tuples.
    """
    met_days = goal_met_days(records, default_goal_hours, tz)
    status = []
    day = start
    while day <= end:
        status.append((day, day in met_days))
        day += timedelta(days=1)
    return status


class StreakEngine:
    """
    Computes StreakState from a collection of records.

    Pure: it reads records and returns a new state, nothing else.
    """

    def __init__(self, tz):
        self.tz = tz

    def compute(self, records, today, previous=None, default_goal_hours=DEFAULT_GOAL_HOURS):
        """
        Args:
            records: iterable of SessionRecord
            today: the user's current local date
            previous: the last persisted StreakState; `longest` never drops below it
            default_goal_hours: goal for records that have none of their own
        """
        records = list(records)
        met_days = goal_met_days(records, default_goal_hours, self.tz)
        closed_days = completed_days(records, self.tz)

        current = current_run(met_days, closed_days, today)
        previous_longest = previous.longest if previous is not None else 0
        longest = max(previous_longest, current, longest_run(met_days))
        return StreakState(current=current, longest=longest)
