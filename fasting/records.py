"""
In-memory value types for fasting sessions.

A SessionRecord is the shape every other part of the fasting app works with:
the History Store keeps them, the Streak Engine reads them, the persistence
gateway and health-store bridges convert them to and from their own formats.
Records are frozen; edits produce a new record through `with_times` or
`closed_at`, so a failed edit can never leave a half-changed record behind.
"""
import enum
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional

from django.utils import timezone

DEFAULT_GOAL_HOURS = 16.0

SECONDS_PER_HOUR = 3600


class Source(str, enum.Enum):
    """Where a session came from. Only used to settle merge conflicts."""
    MANUAL = 'Manual'
    EXTERNAL_SYNC = 'ExternalSync'


def new_session_id() -> str:
    return uuid.uuid4().hex


def parse_instant(value):
    """ISO-8601 string (Z suffix allowed) to an aware datetime. Naive values are read in the server timezone."""
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


@dataclass(frozen=True)
class SessionRecord:
    """One fast. `end_time=None` means the fast is still running."""
    start_time: datetime
    end_time: Optional[datetime] = None
    goal_hours: Optional[float] = None
    preceding_eating_window: Optional[timedelta] = None
    source: Source = Source.MANUAL
    id: str = field(default_factory=new_session_id)

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None

    @property
    def has_valid_interval(self) -> bool:
        """Closed records must end strictly after they start."""
        return self.end_time is None or self.end_time > self.start_time

    @property
    def duration(self) -> timedelta:
        """Stored length of the fast. Zero while open; elapsed time is the controller's job."""
        if self.end_time is None:
            return timedelta(0)
        return self.end_time - self.start_time

    @property
    def duration_hours(self) -> float:
        return self.duration.total_seconds() / SECONDS_PER_HOUR

    def effective_goal_hours(self, default_goal_hours=DEFAULT_GOAL_HOURS) -> float:
        return self.goal_hours if self.goal_hours is not None else default_goal_hours

    def met_goal(self, default_goal_hours=DEFAULT_GOAL_HOURS) -> bool:
        """
        Whether this fast reached its goal.

        Open fasts never count, however long they have run, and neither do
        records whose interval is impossible (end at or before start).
        """
        if self.is_open or not self.has_valid_interval:
            return False
        goal_seconds = self.effective_goal_hours(default_goal_hours) * SECONDS_PER_HOUR
        return self.duration.total_seconds() >= goal_seconds

    def overlaps(self, other: 'SessionRecord') -> bool:
        """
        Interval overlap test. An open record extends indefinitely.
        Fasts that only touch at an endpoint do not overlap.
        """
        self_ends_after = self.end_time is None or self.end_time > other.start_time
        other_ends_after = other.end_time is None or other.end_time > self.start_time
        return self_ends_after and other_ends_after

    def closed_at(self, end_time: datetime) -> 'SessionRecord':
        return replace(self, end_time=end_time)

    def with_times(self, start_time: datetime, end_time: Optional[datetime]) -> 'SessionRecord':
        return replace(self, start_time=start_time, end_time=end_time)

    def with_source(self, source: Source) -> 'SessionRecord':
        return replace(self, source=source)

    def to_dict(self) -> dict:
        window = self.preceding_eating_window
        return {
            'id': self.id,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'goal_hours': self.goal_hours,
            'preceding_eating_window_seconds': window.total_seconds() if window is not None else None,
            'source': self.source.value,
            'duration_hours': round(self.duration_hours, 2),
        }

    @classmethod
    def from_dict(cls, data: dict, source: Optional[Source] = None) -> 'SessionRecord':
        """
        Build a record from `to_dict()` output (or an API payload of the same shape).

        Raises KeyError/ValueError on missing or malformed fields. A goal that
        is not positive is dropped, so the fast is judged against the default.
        """
        window_seconds = data.get('preceding_eating_window_seconds')
        goal_hours = data.get('goal_hours')
        if goal_hours is not None:
            goal_hours = float(goal_hours)
            if goal_hours <= 0:
                goal_hours = None
        kwargs = {
            'start_time': parse_instant(data['start_time']),
            'end_time': parse_instant(data.get('end_time')),
            'goal_hours': goal_hours,
            'preceding_eating_window': timedelta(seconds=float(window_seconds)) if window_seconds is not None else None,
            'source': source or Source(data.get('source', Source.MANUAL.value)),
        }
        if data.get('id'):
            kwargs['id'] = str(data['id'])
        return cls(**kwargs)

    def __str__(self):
        state = 'open' if self.is_open else f'{self.duration_hours:.1f}h'
        return f"{self.source.value} fast on {self.start_time.strftime('%Y-%m-%d %H:%M')} ({state})"
