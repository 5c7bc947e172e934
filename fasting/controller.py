"""
Session Controller: the single entry point for changing fasting state.

A controller owns one HistoryStore and the streak counters derived from it.
Every mutation validates its input first, changes history, recomputes the
streaks inline, then queues the change set (records it changed, ids it
deleted) with the persistence writer, so no reader ever sees new history
paired with stale streaks. The queued writes run after the lock is released.
There is no module-level instance; build one with
`FastingController.load(gateway)` and pass it to whatever needs it.

States are Idle (no open fast) and Active (exactly one open fast). `start`
is the only way into Active and `stop` (or deleting the open fast) the only
way out.
"""
import enum
import logging
import threading
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from fastlife.timezone_utils import get_configured_timezone, local_date

from .exceptions import AlreadyActive, InvalidInterval, NoActiveSession, NotFound, StorageUnavailable
from .history import HistoryStore
from .notifications import NullNotificationScheduler
from .persistence import InMemoryGateway, PersistenceWriter
from .records import DEFAULT_GOAL_HOURS, SECONDS_PER_HOUR, SessionRecord, Source
from .stages import stage_for
from .streaks import StreakEngine, StreakState, daily_goal_status

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = 'idle'
    ACTIVE = 'active'


class Event(str, enum.Enum):
    STARTED = 'started'
    STOPPED = 'stopped'
    EDITED = 'edited'
    DELETED = 'deleted'
    LOGGED = 'logged'
    MERGED = 'merged'
    GOAL_CHANGED = 'goal_changed'
    RESET = 'reset'


class FastingController:
    """
    Owns the active fast, the fasting history and the streak counters.

    Args:
        gateway: PersistenceGateway used when no writer is given (defaults to InMemoryGateway)
        notifier: NotificationScheduler for goal reminders
        store: initial HistoryStore
        clock: zero-argument callable returning the current aware datetime
        default_goal_hours: goal for fasts that do not carry their own
        tz: timezone whose calendar days streaks are counted in
        writer: PersistenceWriter; built inline around `gateway` when omitted
        streak_state: last persisted StreakState, so `longest` never drops
    """

    def __init__(self, gateway=None, notifier=None, store=None, clock=None,
                 default_goal_hours=None, tz=None, writer=None, streak_state=None):
        self.gateway = gateway if gateway is not None else InMemoryGateway()
        self.writer = writer if writer is not None else PersistenceWriter(self.gateway)
        self.notifier = notifier if notifier is not None else NullNotificationScheduler()
        self.store = store if store is not None else HistoryStore()
        self.clock = clock or timezone.now
        self.tz = tz or get_configured_timezone()
        if default_goal_hours is None:
            default_goal_hours = getattr(settings, 'FASTING_DEFAULT_GOAL_HOURS', DEFAULT_GOAL_HOURS)
        self.default_goal_hours = float(default_goal_hours)
        self.engine = StreakEngine(self.tz)
        self._streaks = streak_state or StreakState()
        self._saved = {r.id: r for r in self.store.snapshot()}
        self._saved_streaks = self._streaks
        self._lock = threading.RLock()
        self._subscribers = []
        self._closed_hooks = []
        self._recompute_streaks()

    @classmethod
    def load(cls, gateway, **kwargs):
        """
        Build a controller from stored data.

        Storage failures are logged and the controller starts from whatever
        could be read; it never refuses to start.
        """
        store = HistoryStore()
        goal_hours = kwargs.pop('default_goal_hours', None)
        streak_state = None
        try:
            for record in gateway.load_sessions():
                if not record.has_valid_interval:
                    logger.warning('Skipping stored fast %s with end time at or before its start', record.id)
                    continue
                if record.is_open and store.open_session() is not None:
                    logger.warning('Skipping stored fast %s - another fast is already open', record.id)
                    continue
                store.insert(record)
            stored_goal = gateway.load_goal_hours()
            if stored_goal is not None:
                goal_hours = stored_goal
            streak_state = gateway.load_streak_state()
        except StorageUnavailable as e:
            logger.warning('Starting with partially loaded fasting data: %s', e.message)
        return cls(gateway=gateway, store=store, default_goal_hours=goal_hours,
                   streak_state=streak_state, **kwargs)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, callback):
        """Call `callback(event, record)` after every successful mutation."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def on_session_closed(self, callback):
        """Call `callback(record)` whenever a fast is stopped; this is where a health-store push hooks in."""
        self._closed_hooks.append(callback)

    def _emit(self, event, record=None):
        for callback in list(self._subscribers):
            try:
                callback(event, record)
            except Exception:
                logger.exception('Fasting subscriber failed handling %s', event.value)

    def _emit_closed(self, record):
        for callback in list(self._closed_hooks):
            try:
                callback(record)
            except Exception:
                logger.exception('Session-closed hook failed for fast %s', record.id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self, now=None):
        return now if now is not None else self.clock()

    def _recompute_streaks(self):
        today = local_date(self.clock(), self.tz)
        self._streaks = self.engine.compute(
            self.store.snapshot(),
            today,
            previous=self._streaks,
            default_goal_hours=self.default_goal_hours,
        )

    def _commit(self, save_goal=False):
        """
        Last step of every mutation, under the lock: streaks first, then queue
        only what changed since the last commit. Callers `_flush()` once the
        lock is released.
        """
        self._recompute_streaks()
        current = {r.id: r for r in self.store.snapshot()}
        changed = [r for session_id, r in current.items() if self._saved.get(session_id) != r]
        deleted = [session_id for session_id in self._saved if session_id not in current]
        self._saved = current
        self._saved_streaks = self._streaks
        self.writer.enqueue(
            changed,
            self._streaks,
            goal_hours=self.default_goal_hours if save_goal else None,
            deleted_ids=deleted,
        )

    def _flush(self):
        self.writer.drain()

    def _require_open(self):
        record = self.store.open_session()
        if record is None:
            raise NoActiveSession()
        return record

    def _goal_at(self, record):
        hours = record.effective_goal_hours(self.default_goal_hours)
        return record.start_time + timedelta(hours=hours)

    def _schedule_goal(self, record):
        try:
            self.notifier.schedule_goal_reached(record.id, self._goal_at(record))
        except Exception:
            logger.exception('Could not schedule goal reminder for fast %s', record.id)

    def _cancel_notifications(self, session_id):
        try:
            self.notifier.cancel_all(session_id)
        except Exception:
            logger.exception('Could not cancel reminders for fast %s', session_id)

    @staticmethod
    def _check_goal_hours(goal_hours):
        if goal_hours is not None and goal_hours <= 0:
            raise ValueError('Goal hours must be positive')

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self, at=None, goal_hours=None):
        """
        Begin a fast.

        The gap since the previous completed fast ended is captured as the
        eating window and never recomputed afterwards.

        Raises:
            AlreadyActive: a fast is already running
        """
        self._check_goal_hours(goal_hours)
        with self._lock:
            at = self._now(at)
            if self.store.open_session() is not None:
                logger.warning('Rejected start: a fast is already in progress')
                raise AlreadyActive()

            previous = self.store.latest_closed_before(at)
            eating_window = at - previous.end_time if previous is not None else None

            record = SessionRecord(
                start_time=at,
                goal_hours=goal_hours,
                preceding_eating_window=eating_window,
                source=Source.MANUAL,
            )
            self.store.insert(record)
            self._commit()
            self._schedule_goal(record)
            logger.info('Fast %s started at %s (goal %.1fh)', record.id, at.isoformat(),
                        record.effective_goal_hours(self.default_goal_hours))
        self._flush()
        self._emit(Event.STARTED, record)
        return record

    def stop(self, at=None):
        """
        End the running fast at `at`.

        Raises:
            NoActiveSession: nothing is running
            InvalidInterval: `at` is not after the fast's start
        """
        with self._lock:
            at = self._now(at)
            record = self._require_open()
            if at <= record.start_time:
                raise InvalidInterval('A fast cannot end before it starts')

            closed = self.store.replace(record.id, record.closed_at(at))
            self._commit()
            self._cancel_notifications(closed.id)
            logger.info('Fast %s stopped after %.2fh (goal met: %s)', closed.id, closed.duration_hours,
                        closed.met_goal(self.default_goal_hours))
        self._flush()
        self._emit_closed(closed)
        self._emit(Event.STOPPED, closed)
        return closed

    def edit_active_start(self, new_start, now=None):
        """
        Move the start of the running fast. The captured eating window is left as it was.

        Raises:
            NoActiveSession: nothing is running
            InvalidInterval: `new_start` is not in the past
        """
        with self._lock:
            now = self._now(now)
            record = self._require_open()
            if new_start >= now:
                raise InvalidInterval('Start time must be in the past')

            edited = self.store.replace(record.id, record.with_times(new_start, None))
            self._commit()
            self._cancel_notifications(edited.id)
            self._schedule_goal(edited)
            logger.info('Fast %s start moved to %s', edited.id, new_start.isoformat())
        self._flush()
        self._emit(Event.EDITED, edited)
        return edited

    def edit_completed(self, session_id, new_start, new_end):
        """
        Change both times of a completed fast. May break or heal a streak day.

        Raises:
            NotFound: no completed fast with that id
            InvalidInterval: `new_end` is not after `new_start`
        """
        with self._lock:
            record = self.store.get(session_id)
            if record.is_open:
                raise NotFound('That fast is still in progress; edit its start time instead')
            if new_end <= new_start:
                raise InvalidInterval()

            edited = self.store.replace(session_id, record.with_times(new_start, new_end))
            self._commit()
            logger.info('Fast %s edited to %s - %s', session_id, new_start.isoformat(), new_end.isoformat())
        self._flush()
        self._emit(Event.EDITED, edited)
        return edited

    def delete(self, session_id):
        """
        Remove a fast. Deleting the running fast discards it and returns to Idle.

        Raises:
            NotFound: no fast with that id
        """
        with self._lock:
            record = self.store.delete(session_id)
            self._commit()
            if record.is_open:
                self._cancel_notifications(record.id)
            logger.info('Fast %s deleted', session_id)
        self._flush()
        self._emit(Event.DELETED, record)
        return record

    def log_completed(self, start, end, goal_hours=None):
        """
        Backfill a completed fast entered by hand.

        Raises:
            InvalidInterval: `end` is not after `start`
        """
        self._check_goal_hours(goal_hours)
        if end <= start:
            raise InvalidInterval()
        with self._lock:
            previous = self.store.latest_closed_before(start)
            eating_window = start - previous.end_time if previous is not None else None
            record = SessionRecord(
                start_time=start,
                end_time=end,
                goal_hours=goal_hours,
                preceding_eating_window=eating_window,
                source=Source.MANUAL,
            )
            self.store.insert(record)
            self._commit()
            logger.info('Fast %s logged manually (%.2fh)', record.id, record.duration_hours)
        self._flush()
        self._emit(Event.LOGGED, record)
        return record

    def merge_external(self, records):
        """Import fasts from an external source. Returns the SyncResult of the merge."""
        with self._lock:
            result = self.store.merge_external(records)
            if result.created:
                self._commit()
            logger.info('External merge: %s', result.summary)
        self._flush()
        if result.created:
            self._emit(Event.MERGED)
        return result

    def set_goal(self, hours):
        """Change the default goal. Fasts without their own goal are re-judged against it."""
        self._check_goal_hours(hours)
        if hours is None:
            raise ValueError('Goal hours are required')
        with self._lock:
            self.default_goal_hours = float(hours)
            self._commit(save_goal=True)
            logger.info('Default fasting goal set to %.1fh', self.default_goal_hours)
        self._flush()
        self._emit(Event.GOAL_CHANGED)

    def reset(self):
        """Delete every fast and zero both streak counters, including the longest streak."""
        with self._lock:
            open_record = self.store.open_session()
            if open_record is not None:
                self._cancel_notifications(open_record.id)
            self.store.clear()
            self._streaks = StreakState()
            self._commit()
            logger.warning('All fasting data reset')
        self._flush()
        self._emit(Event.RESET)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def storage_warning(self):
        """Message of the last failed save, or None once a save succeeds."""
        error = self.writer.last_error
        return error.message if error is not None else None

    def current_state(self):
        """(State.ACTIVE, open record) or (State.IDLE, None)."""
        with self._lock:
            record = self.store.open_session()
        if record is None:
            return State.IDLE, None
        return State.ACTIVE, record

    @property
    def is_active(self):
        return self.current_state()[0] is State.ACTIVE

    def elapsed(self, now=None):
        """Time since the running fast started; zero when idle. Never stored."""
        with self._lock:
            record = self.store.open_session()
        if record is None:
            return timedelta(0)
        return self._now(now) - record.start_time

    def goal_hours_for_current(self):
        with self._lock:
            record = self.store.open_session()
            if record is None:
                return self.default_goal_hours
            return record.effective_goal_hours(self.default_goal_hours)

    def progress(self, now=None):
        """
        Fraction of the goal reached, clamped to [0, 1] for display.
        Use `elapsed` to tell how far past the goal a fast has run.
        """
        goal_seconds = self.goal_hours_for_current() * SECONDS_PER_HOUR
        elapsed = self.elapsed(now).total_seconds()
        return max(0.0, min(1.0, elapsed / goal_seconds))

    def remaining(self, now=None):
        """Time left until the goal; the whole goal when idle, zero once passed."""
        goal = timedelta(hours=self.goal_hours_for_current())
        if not self.is_active:
            return goal
        return max(timedelta(0), goal - self.elapsed(now))

    def current_stage(self, now=None):
        """Metabolic stage of the running fast, or None when idle."""
        if not self.is_active:
            return None
        return stage_for(self.elapsed(now))

    def history(self, goal_met_only=False, date_range=None):
        with self._lock:
            return self.store.query(
                goal_met_only=goal_met_only,
                date_range=date_range,
                default_goal_hours=self.default_goal_hours,
            )

    def streaks(self):
        with self._lock:
            return self._streaks

    def refresh_streaks(self):
        """
        Recompute streaks against today's date without changing history.

        Streaks are otherwise only recomputed on mutation, so a long-lived
        controller calls this after midnight to let a missed day break the streak.
        Only the streak counters are saved, and only when they changed.
        """
        with self._lock:
            self._recompute_streaks()
            streaks = self._streaks
            changed = streaks != self._saved_streaks
            if changed:
                self._saved_streaks = streaks
                self.writer.enqueue((), streaks)
        if changed:
            self._flush()
        return streaks

    def daily_status(self, days=7, today=None):
        """Goal-met flag for each of the last `days` local days, oldest first."""
        today = today or local_date(self.clock(), self.tz)
        with self._lock:
            records = self.store.snapshot()
        return daily_goal_status(records, self.default_goal_hours, self.tz,
                                 today - timedelta(days=days - 1), today)

    def summary(self):
        """Lifetime statistics over completed fasts."""
        with self._lock:
            completed = [r for r in self.store.snapshot() if r.is_complete and r.has_valid_interval]
            goal_met = sum(1 for r in completed if r.met_goal(self.default_goal_hours))
        hours = [r.duration_hours for r in completed]
        windows = [r.preceding_eating_window.total_seconds() / SECONDS_PER_HOUR
                   for r in completed if r.preceding_eating_window is not None]
        return {
            'total_fasts': len(completed),
            'goal_met_fasts': goal_met,
            'total_hours': round(sum(hours), 2),
            'average_hours': round(sum(hours) / len(hours), 2) if hours else 0.0,
            'longest_fast_hours': round(max(hours), 2) if hours else 0.0,
            'average_eating_window_hours': round(sum(windows) / len(windows), 2) if windows else None,
        }
