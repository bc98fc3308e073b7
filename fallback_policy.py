"""Cross-session failure tracking and the voice-to-text fallback switch."""

from __future__ import annotations

import threading
from typing import Callable, Optional

import structlog

from errors import FALLBACK_ADVISORY, TERMINAL_KINDS
from models import CaptureResultKind, FailureCounter

log = structlog.get_logger(__name__)

AdvisoryCallback = Callable[[str], None]


class FailurePolicy:
    def __init__(
        self,
        fallback_threshold: int = 2,
        on_advisory: Optional[AdvisoryCallback] = None,
        on_fallback_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.fallback_threshold = fallback_threshold
        self._on_advisory = on_advisory
        self._on_fallback_change = on_fallback_change
        self._lock = threading.Lock()
        self._counter = FailureCounter()
        self._advised = False

    @property
    def consecutive_failures(self) -> int:
        return self._counter.consecutive_failures

    @property
    def fallback_active(self) -> bool:
        return self._counter.fallback_active

    def snapshot(self) -> FailureCounter:
        with self._lock:
            return FailureCounter(
                consecutive_failures=self._counter.consecutive_failures,
                fallback_active=self._counter.fallback_active,
            )

    def on_result(self, kind: CaptureResultKind) -> None:
        if kind == CaptureResultKind.CANCELLED:
            return
        advise = False
        activated = False
        with self._lock:
            if kind == CaptureResultKind.SUCCESS:
                self._counter.consecutive_failures = 0
                return
            self._counter.consecutive_failures += 1
            if kind in TERMINAL_KINDS or self._counter.consecutive_failures >= self.fallback_threshold:
                activated = not self._counter.fallback_active
                self._counter.fallback_active = True
                if not self._advised:
                    self._advised = True
                    advise = True
            failures = self._counter.consecutive_failures
        log.debug("fallback.failure_recorded", kind=kind.value, consecutive_failures=failures)
        if activated:
            log.warning("fallback.activated", kind=kind.value, consecutive_failures=failures)
            if self._on_fallback_change:
                self._on_fallback_change(True)
        if advise and self._on_advisory:
            self._on_advisory(FALLBACK_ADVISORY)

    def retry(self) -> None:
        with self._lock:
            was_active = self._counter.fallback_active
            self._counter = FailureCounter()
            self._advised = False
        log.info("fallback.retry", was_active=was_active)
        if was_active and self._on_fallback_change:
            self._on_fallback_change(False)
