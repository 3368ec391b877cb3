"""
Cancellable timers built on threading.Timer.

Every game clock (countdown, elapsed time, cooldown, reconnect backoff,
reconnect grace, simulated opponent moves) goes through one of these so that
teardown can cancel it. A timer that still fires after being cancelled finds
its generation out of date and does nothing.
"""

import itertools
import logging
import threading
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

TimerFactory = Callable[..., threading.Timer]


class RepeatingTimer:
    """
    Fixed-interval ticker.

    The callback runs once per interval until stop() is called or the
    callback returns False.
    """

    def __init__(self, interval: float, callback: Callable[[], Optional[bool]],
                 timer_factory: TimerFactory = threading.Timer, name: str = 'timer'):
        self.interval = interval
        self.name = name
        self._callback = callback
        self._timer_factory = timer_factory
        self._timer = None
        self._lock = threading.Lock()
        self._generation = 0
        self.is_running = False

    def start(self):
        """Start or restart ticking."""
        with self._lock:
            self._cancel_timer()
            self._generation += 1
            self.is_running = True
            self._schedule_tick(self._generation)

    def stop(self):
        """Stop ticking. Safe to call from inside the callback."""
        with self._lock:
            self._cancel_timer()
            self._generation += 1
            self.is_running = False

    def _cancel_timer(self):
        if self._timer:
            self._timer.cancel()
            self._timer = None

    def _schedule_tick(self, generation: int):
        self._timer = self._timer_factory(self.interval, self._tick, args=(generation,))
        self._timer.daemon = True
        self._timer.start()

    def _tick(self, generation: int):
        with self._lock:
            if generation != self._generation or not self.is_running:
                return

        try:
            keep_going = self._callback()
        except Exception as e:
            logger.exception(f"{self.name} tick error: {e}")
            keep_going = False

        with self._lock:
            if generation != self._generation:
                return
            if keep_going is False:
                self._timer = None
                self.is_running = False
                return
            self._schedule_tick(generation)


class TimerGroup:
    """
    A set of one-shot timers owned by one object.

    cancel_all() drops every pending timer; close() does the same and refuses
    any further scheduling, for use on teardown.
    """

    def __init__(self, timer_factory: TimerFactory = threading.Timer):
        self._timer_factory = timer_factory
        self._timers: Dict[int, threading.Timer] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.closed = False

    def call_later(self, delay: float, fn: Callable, *args) -> Optional[int]:
        """Run ``fn(*args)`` after ``delay`` seconds. Returns a handle for cancel()."""
        with self._lock:
            if self.closed:
                return None
            timer_id = next(self._ids)
            timer = self._timer_factory(delay, self._fire, args=(timer_id, fn, args))
            timer.daemon = True
            self._timers[timer_id] = timer
        timer.start()
        return timer_id

    def cancel(self, timer_id: Optional[int]) -> None:
        with self._lock:
            timer = self._timers.pop(timer_id, None)
        if timer:
            timer.cancel()

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def close(self) -> None:
        with self._lock:
            self.closed = True
        self.cancel_all()

    @property
    def pending(self) -> int:
        return len(self._timers)

    def _fire(self, timer_id: int, fn: Callable, args: tuple):
        with self._lock:
            if self.closed or self._timers.pop(timer_id, None) is None:
                return
        fn(*args)
