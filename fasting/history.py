"""
History Store: the ordered collection of every fasting session.

Holds completed sessions and at most one open session. The controller is the
only writer; the Streak Engine and the views read from it.
"""
import itertools
import logging

from fastlife.sync_utils import SyncResult

from .exceptions import DuplicateOpenSession, NotFound
from .records import DEFAULT_GOAL_HOURS, Source

logger = logging.getLogger(__name__)


class HistoryStore:
    """
    In-memory session collection keyed by record id.

    Listings are sorted by start_time descending; equal start times keep
    insertion order.
    """

    def __init__(self, records=()):
        self._records = {}
        self._order = {}
        self._counter = itertools.count()
        for record in records:
            self.insert(record)

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(self.snapshot())

    def __contains__(self, session_id):
        return session_id in self._records

    def get(self, session_id):
        try:
            return self._records[session_id]
        except KeyError:
            raise NotFound(f'No fast with id {session_id}') from None

    def open_session(self):
        """The running fast, or None."""
        for record in self._records.values():
            if record.is_open:
                return record
        return None

    def insert(self, record):
        if record.is_open and self.open_session() is not None:
            raise DuplicateOpenSession()
        if record.id in self._records:
            raise ValueError(f'Fast {record.id} is already in history')
        self._records[record.id] = record
        self._order[record.id] = next(self._counter)
        return record

    def replace(self, session_id, record):
        """Swap the record stored under `session_id` for `record`, keeping its position."""
        existing = self.get(session_id)
        if record.is_open:
            current_open = self.open_session()
            if current_open is not None and current_open.id != existing.id:
                raise DuplicateOpenSession()
        if record.id != session_id:
            raise ValueError('Replacement record must keep the same id')
        self._records[session_id] = record
        return record

    def delete(self, session_id):
        record = self.get(session_id)
        del self._records[session_id]
        del self._order[session_id]
        return record

    def clear(self):
        self._records.clear()
        self._order.clear()

    def snapshot(self):
        """All records, newest start first, as an immutable tuple."""
        return tuple(sorted(
            self._records.values(),
            key=lambda r: (-r.start_time.timestamp(), self._order[r.id]),
        ))

    def closed_sessions(self):
        return [r for r in self.snapshot() if r.is_complete]

    def latest_closed_before(self, instant):
        """Most recent completed fast that ended at or before `instant`."""
        candidates = [r for r in self.closed_sessions() if r.end_time <= instant]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.end_time)

    def query(self, goal_met_only=False, date_range=None, default_goal_hours=DEFAULT_GOAL_HOURS):
        """
        Records sorted by start_time descending.

        Args:
            goal_met_only: only completed fasts that reached their goal
            date_range: optional (earliest, latest) bounds on start_time, inclusive;
                either bound may be None
            default_goal_hours: goal used for records without their own
        """
        records = self.snapshot()
        if goal_met_only:
            records = [r for r in records if r.met_goal(default_goal_hours)]
        if date_range is not None:
            earliest, latest = date_range
            records = [
                r for r in records
                if (earliest is None or r.start_time >= earliest)
                and (latest is None or r.start_time <= latest)
            ]
        return list(records)

    def merge_external(self, records):
        """
        Import sessions from an external source without duplicating fasts.

        An incoming session that shares an id with, or overlaps the interval
        of, any session already in history is dropped: records already here
        win, manual ones in particular. Open or malformed incoming sessions
        are skipped. Everything else is inserted tagged as ExternalSync.
        Merging the same batch twice leaves history unchanged the second time.
        """
        result = SyncResult(source=Source.EXTERNAL_SYNC.value)
        for record in records:
            if record.is_open or not record.has_valid_interval:
                logger.warning('Skipping external fast %s - not a completed interval', record.id)
                result.skipped += 1
                continue
            if record.id in self._records:
                result.skipped += 1
                continue
            conflict = next((r for r in self._records.values() if r.overlaps(record)), None)
            if conflict is not None:
                logger.debug('Dropping external fast %s - overlaps %s fast %s',
                             record.id, conflict.source.value, conflict.id)
                result.skipped += 1
                continue
            self.insert(record.with_source(Source.EXTERNAL_SYNC))
            result.created += 1
        return result
