"""Hold recognized text until the user accepts or discards it."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

import structlog

from models import PendingConfirmation

log = structlog.get_logger(__name__)


class ConfirmationGate:
    def __init__(
        self,
        restart: Optional[Callable[[], Any]] = None,
        on_accept: Optional[Callable[[str], None]] = None,
        on_present: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.restart = restart
        self._on_accept = on_accept
        self._on_present = on_present
        self._lock = threading.Lock()
        self._pending: Optional[PendingConfirmation] = None

    @property
    def pending(self) -> Optional[str]:
        pending = self._pending
        return pending.text if pending is not None else None

    def present(self, text: str) -> None:
        with self._lock:
            if self._pending is not None:
                log.debug("confirmation.overwritten", previous_chars=len(self._pending.text))
            self._pending = PendingConfirmation(text=text)
        if self._on_present:
            self._on_present(text)

    def accept(self) -> Optional[str]:
        with self._lock:
            pending = self._pending
            self._pending = None
        if pending is None:
            return None
        if self._on_accept:
            self._on_accept(pending.text)
        return pending.text

    def discard(self) -> None:
        with self._lock:
            self._pending = None
        if self.restart is not None:
            self.restart()
