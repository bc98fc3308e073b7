"""Single-timer supervisor used for silence and hard-ceiling timeouts."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

TimerFactory = Callable[..., Any]


class TimeoutSupervisor:
    """Owns at most one pending timer.

    Every ``arm``/``feed_activity``/``disarm`` bumps a generation counter; a
    timer that fires with a stale generation does nothing. Once the callback
    has run the supervisor is spent until the next ``arm``, so a cycle fires
    at most once.
    """

    def __init__(self, name: str = "timeout", timer_factory: TimerFactory = threading.Timer) -> None:
        self.name = name
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._generation = 0
        self._timer: Any = None
        self._callback: Optional[Callable[[], None]] = None
        self._delay_ms = 0

    @property
    def armed(self) -> bool:
        return self._callback is not None

    def arm(self, on_timeout: Callable[[], None], delay_ms: int) -> None:
        with self._lock:
            self._cancel_locked()
            self._callback = on_timeout
            self._delay_ms = delay_ms
            self._schedule_locked()

    def feed_activity(self) -> None:
        with self._lock:
            if self._callback is None:
                return
            self._cancel_locked()
            self._schedule_locked()

    def disarm(self) -> None:
        with self._lock:
            self._cancel_locked()
            self._callback = None

    def _schedule_locked(self) -> None:
        self._generation += 1
        timer = self._timer_factory(self._delay_ms / 1000.0, self._fire, args=(self._generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_locked(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._callback is None:
                return
            callback = self._callback
            self._callback = None
            self._timer = None
        callback()
