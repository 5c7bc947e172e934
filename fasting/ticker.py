"""
Elapsed-time ticker for a running fast.

Pulls elapsed time and progress from the controller at a steady cadence and
hands them to a display callback. It only reads: history is never touched
from the ticker thread.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings

from .controller import Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tick:
    now: datetime
    elapsed: timedelta
    progress: float
    remaining: timedelta


class ElapsedTicker:
    """
    Background timer that calls `callback(tick)` every `interval` seconds
    while the controller has a running fast.

    Call `attach()` to have it follow the controller: it starts when a fast
    starts and stops when the controller goes back to Idle. `pause()` and
    `resume()` are for the app going to the background and coming back.
    """

    def __init__(self, controller, callback, interval=None):
        self.controller = controller
        self.callback = callback
        if interval is None:
            interval = getattr(settings, 'FASTING_TICK_SECONDS', 1.0)
        self.interval = float(interval)
        self._thread = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._paused = False

    @property
    def is_running(self):
        thread = self._thread
        return thread is not None and thread.is_alive()

    def attach(self):
        self.controller.subscribe(self._on_controller_event)
        if self.controller.is_active:
            self.start()

    def detach(self):
        self.controller.unsubscribe(self._on_controller_event)
        self.stop()

    def _on_controller_event(self, event, record):
        if self.controller.is_active:
            if event is Event.STARTED and not self._paused:
                self.start()
        else:
            self.stop()

    def start(self):
        """Start ticking. Does nothing when already running or when no fast is running."""
        with self._lock:
            if self.is_running or not self.controller.is_active:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name='fasting-ticker',
                daemon=True,
            )
            self._thread.start()
        logger.debug('Ticker started (every %.1fs)', self.interval)

    def stop(self, timeout=None):
        """Stop ticking and wait for the timer thread to exit."""
        with self._lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else self.interval * 2 + 1)
            logger.debug('Ticker stopped')

    def pause(self):
        self._paused = True
        self.stop()

    def resume(self):
        self._paused = False
        self.start()

    def tick(self, now=None):
        """Read the current values once without the timer thread."""
        now = now or self.controller.clock()
        return Tick(
            now=now,
            elapsed=self.controller.elapsed(now),
            progress=self.controller.progress(now),
            remaining=self.controller.remaining(now),
        )

    def _run(self, stop_event):
        while not stop_event.is_set():
            if not self.controller.is_active:
                break
            try:
                self.callback(self.tick())
            except Exception:
                logger.exception('Ticker callback failed')
            if stop_event.wait(self.interval):
                break
        with self._lock:
            if self._stop_event is stop_event:
                self._thread = None
