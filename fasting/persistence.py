"""
Persistence Gateway: durable storage for fasting history and settings.

The controller keeps the in-memory History Store as the source of truth and
hands change sets (records it changed, ids it deleted) to a PersistenceWriter,
which pushes them through a gateway. Rows another controller wrote are never
touched. A failed save is logged and retried with the next change set; it
never undoes the in-memory change.
"""
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor

from django.db import DatabaseError, transaction

from .exceptions import StorageUnavailable
from .streaks import StreakState

logger = logging.getLogger(__name__)

GOAL_HOURS_KEY = 'fasting_goal_hours'
CURRENT_STREAK_KEY = 'fasting_current_streak'
LONGEST_STREAK_KEY = 'fasting_longest_streak'


class PersistenceGateway:
    """
    Interface for fasting storage backends.

    Every method may raise StorageUnavailable.
    """

    def load_sessions(self):
        raise NotImplementedError

    def save_sessions(self, records, deleted_ids=()):
        """Upsert `records` by id and delete `deleted_ids`. Other stored sessions are left alone."""
        raise NotImplementedError

    def load_streak_state(self):
        raise NotImplementedError

    def save_streak_state(self, current, longest):
        raise NotImplementedError

    def load_goal_hours(self):
        raise NotImplementedError

    def save_goal_hours(self, hours):
        raise NotImplementedError


class InMemoryGateway(PersistenceGateway):
    """
    Dict-backed gateway. Set `fail = True` to make every call raise
    StorageUnavailable.
    """

    def __init__(self, sessions=(), goal_hours=None, streak_state=None):
        self.sessions = list(sessions)
        self.goal_hours = goal_hours
        self.streak_state = streak_state or StreakState()
        self.fail = False
        self.save_count = 0

    def _check(self):
        if self.fail:
            raise StorageUnavailable('In-memory storage is switched off')

    def load_sessions(self):
        self._check()
        return list(self.sessions)

    def save_sessions(self, records, deleted_ids=()):
        self._check()
        changed = {record.id: record for record in records}
        kept = [changed.pop(r.id, r) for r in self.sessions if r.id not in deleted_ids]
        self.sessions = kept + list(changed.values())
        self.save_count += 1

    def load_streak_state(self):
        self._check()
        return self.streak_state

    def save_streak_state(self, current, longest):
        self._check()
        self.streak_state = StreakState(current=current, longest=longest)

    def load_goal_hours(self):
        self._check()
        return self.goal_hours

    def save_goal_hours(self, hours):
        self._check()
        self.goal_hours = hours


class DatabaseGateway(PersistenceGateway):
    """
    Django ORM gateway.

    Sessions are rows in fasting.FastingSession keyed by session_id; goal
    hours and streak counters are settings.Setting key/value rows.
    """

    def load_sessions(self):
        from .models import FastingSession

        try:
            return [row.to_record() for row in FastingSession.objects.all()]
        except DatabaseError as e:
            raise StorageUnavailable(f'Could not load fasting sessions: {e}') from e

    def save_sessions(self, records, deleted_ids=()):
        from .models import FastingSession

        try:
            with transaction.atomic():
                for record in records:
                    FastingSession.objects.update_or_create(
                        session_id=record.id,
                        defaults=FastingSession.fields_from_record(record),
                    )
                if deleted_ids:
                    FastingSession.objects.filter(session_id__in=list(deleted_ids)).delete()
        except DatabaseError as e:
            raise StorageUnavailable(f'Could not save fasting sessions: {e}') from e

    def _get_setting(self, key, default):
        from settings.models import Setting

        try:
            return Setting.get(key, default)
        except DatabaseError as e:
            raise StorageUnavailable(f'Could not read setting {key}: {e}') from e

    def _set_setting(self, key, value, description):
        from settings.models import Setting

        try:
            Setting.set(key, str(value), description)
        except DatabaseError as e:
            raise StorageUnavailable(f'Could not save setting {key}: {e}') from e

    def load_streak_state(self):
        current = self._get_setting(CURRENT_STREAK_KEY, '0')
        longest = self._get_setting(LONGEST_STREAK_KEY, '0')
        try:
            return StreakState(current=int(current), longest=int(longest))
        except ValueError:
            logger.warning('Ignoring unreadable cached streak values %r/%r', current, longest)
            return StreakState()

    def save_streak_state(self, current, longest):
        """Zeroed counters are stored as absent keys, which load back as zero."""
        from settings.models import Setting

        if not current and not longest:
            try:
                Setting.remove(CURRENT_STREAK_KEY, LONGEST_STREAK_KEY)
            except DatabaseError as e:
                raise StorageUnavailable(f'Could not clear streak settings: {e}') from e
            return
        description = 'Cached fasting streak, recomputed from history'
        self._set_setting(CURRENT_STREAK_KEY, current, description)
        self._set_setting(LONGEST_STREAK_KEY, longest, description)

    def load_goal_hours(self):
        value = self._get_setting(GOAL_HOURS_KEY, None)
        if value is None:
            return None
        try:
            hours = float(value)
        except ValueError:
            logger.warning('Ignoring unreadable goal hours setting %r', value)
            return None
        return hours if hours > 0 else None

    def save_goal_hours(self, hours):
        self._set_setting(GOAL_HOURS_KEY, hours, 'Default fasting goal in hours')


class PersistenceWriter:
    """
    Applies change sets to a gateway.

    `enqueue` is cheap and is called while the controller holds its lock, so
    change sets are queued in mutation order. `drain` does the actual writes
    and is called after the lock is released, so readers such as the ticker
    never wait on storage. With background=True writes go to a single worker
    thread instead and `drain` has nothing to do.

    A change set that fails to save is folded into the next one, so a later
    successful write also stores whatever an earlier failure left behind.
    """

    def __init__(self, gateway, background=False):
        self.gateway = gateway
        self.last_error = None
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='fasting-save') if background else None
        self._pending = []
        self._queue = deque()
        self._unsaved = {}
        self._unsaved_deletes = set()
        self._unsaved_goal = None

    def enqueue(self, records, streak_state, goal_hours=None, deleted_ids=()):
        """Queue a change set. Nothing is written until `drain` (or the background worker) runs."""
        batch = (tuple(records), tuple(deleted_ids), streak_state, goal_hours)
        if self._executor is None:
            with self._lock:
                self._queue.append(batch)
            return
        future = self._executor.submit(self._write, *batch)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()] + [future]

    def drain(self):
        """Write every queued change set, oldest first."""
        with self._write_lock:
            while True:
                with self._lock:
                    if not self._queue:
                        return
                    batch = self._queue.popleft()
                self._write(*batch)

    def submit(self, records, streak_state, goal_hours=None, deleted_ids=()):
        """Queue a change set and write it. Returns immediately when in background mode."""
        self.enqueue(records, streak_state, goal_hours=goal_hours, deleted_ids=deleted_ids)
        self.drain()

    def _write(self, records, deleted_ids, streak_state, goal_hours):
        for record in records:
            self._unsaved[record.id] = record
            self._unsaved_deletes.discard(record.id)
        for session_id in deleted_ids:
            self._unsaved.pop(session_id, None)
            self._unsaved_deletes.add(session_id)
        if goal_hours is not None:
            self._unsaved_goal = goal_hours

        try:
            if self._unsaved or self._unsaved_deletes:
                self.gateway.save_sessions(list(self._unsaved.values()), deleted_ids=sorted(self._unsaved_deletes))
            self.gateway.save_streak_state(streak_state.current, streak_state.longest)
            if self._unsaved_goal is not None:
                self.gateway.save_goal_hours(self._unsaved_goal)
        except StorageUnavailable as e:
            logger.warning('Fasting data not saved, keeping in-memory state: %s', e.message)
            self.last_error = e
        else:
            self._unsaved = {}
            self._unsaved_deletes = set()
            self._unsaved_goal = None
            self.last_error = None

    def flush(self, timeout=None):
        """Block until every queued write has finished."""
        self.drain()
        with self._lock:
            pending = list(self._pending)
            self._pending = []
        for future in pending:
            future.result(timeout=timeout)

    def close(self):
        if self._executor is not None:
            self.flush()
            self._executor.shutdown(wait=True)
            self._executor = None
