"""State-machine based capture session orchestration."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import structlog

from confirmation import ConfirmationGate
from errors import RESULT_CODES, TERMINAL_KINDS, CaptureDeviceError, result_kind_for
from fallback_policy import FailurePolicy
from interfaces import CaptureProvider
from models import (
    CaptureConfig,
    CaptureEvent,
    CaptureEventKind,
    CaptureResult,
    CaptureResultKind,
    CaptureSession,
    CaptureState,
    TranscriptChunk,
)
from normalizer import TranscriptNormalizer
from supervisor import TimeoutSupervisor, TimerFactory

log = structlog.get_logger(__name__)

StateCallback = Callable[[CaptureState, CaptureState], None]
PartialCallback = Callable[[str], None]
ResultCallback = Callable[[CaptureResult], None]
ErrorCallback = Callable[[str, str], None]

_TERMINAL_STATES = {
    CaptureResultKind.SUCCESS: CaptureState.COMPLETED,
    CaptureResultKind.TIMEOUT: CaptureState.TIMED_OUT,
}


class CaptureController:
    """Drives one capture provider through one session at a time.

    ``start_capture`` while a session is live is rejected: it returns False
    and leaves the live session untouched.
    """

    def __init__(
        self,
        provider: CaptureProvider,
        config: Optional[CaptureConfig] = None,
        policy: Optional[FailurePolicy] = None,
        confirmation: Optional[ConfirmationGate] = None,
        finalize_timeout_s: float = 1.0,
        timer_factory: TimerFactory = threading.Timer,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[PartialCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_unavailable: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._provider = provider
        self._config = config or CaptureConfig()
        self.policy = policy or FailurePolicy()
        self.confirmation = confirmation
        if confirmation is not None and confirmation.restart is None:
            confirmation.restart = self.start_capture
        self._finalize_timeout_s = finalize_timeout_s
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_result = on_result
        self._on_error = on_error
        self._on_unavailable = on_unavailable

        self._lock = threading.RLock()
        self._state = CaptureState.IDLE
        self._session_id = 0
        self._session: Optional[CaptureSession] = None
        self._available = True
        self._last_result: Optional[CaptureResult] = None
        self._done = threading.Event()
        self._normalize = TranscriptNormalizer(self._config.aggressive_collapse)
        self._silence = TimeoutSupervisor("silence", timer_factory)
        self._ceiling = TimeoutSupervisor("ceiling", timer_factory)
        self._start = TimeoutSupervisor("start", timer_factory)

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def available(self) -> bool:
        return self._available

    @property
    def last_result(self) -> Optional[CaptureResult]:
        return self._last_result

    @property
    def config(self) -> CaptureConfig:
        return self._config

    def configure(self, config: CaptureConfig) -> bool:
        with self._lock:
            if self._state != CaptureState.IDLE:
                return False
            self._config = config
            self._normalize = TranscriptNormalizer(config.aggressive_collapse)
            return True

    def start_capture(self) -> bool:
        with self._lock:
            if self._state != CaptureState.IDLE:
                log.debug("capture.start_rejected", state=self._state.value)
                return False
            if not self._available:
                log.info("capture.start_rejected", reason="capability unavailable")
                return False
            self._session_id += 1
            session = CaptureSession(session_id=self._session_id)
            self._session = session
            self._done.clear()
            self._transition(CaptureState.STARTING)
            session_id = session.session_id
            config = self._config
            if config.start_timeout_ms > 0:
                self._start.arm(lambda: self._on_start_timeout(session_id), config.start_timeout_ms)

        # SDKs may call back on their own thread before start() returns
        try:
            self._provider.start(config, lambda event: self._handle_event(session_id, event))
        except CaptureDeviceError as exc:
            with self._lock:
                self._finish(session, result_kind_for(exc.provider_code), message=str(exc))
            return False
        except Exception as exc:
            with self._lock:
                self._finish(session, CaptureResultKind.OTHER_ERROR, message=f"start failed: {exc}")
            return False
        return True

    def stop_capture(self) -> None:
        with self._lock:
            session = self._session
            if session is None or self._state not in (CaptureState.STARTING, CaptureState.LISTENING):
                return
            session.manual_stop = True
            self._start.disarm()
            self._silence.disarm()
            self._ceiling.disarm()
            self._transition(CaptureState.FINALIZING)
            # let the provider flush finals it still holds
            self._safe_stop_provider()

        if self._finalize_timeout_s > 0:
            self._done.wait(timeout=self._finalize_timeout_s)

        with self._lock:
            if self._session is not session or session.processed:
                return
            self._finish_manual_stop(session)

    def cancel_capture(self, reason: str = "cancelled") -> None:
        with self._lock:
            session = self._session
            if session is None or self._state == CaptureState.IDLE:
                return
            self._finish(session, CaptureResultKind.CANCELLED, message=reason)

    def retry(self) -> None:
        with self._lock:
            self._available = True
        self.policy.retry()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout=timeout)

    # ------------------------------------------------------------------
    # Provider events
    # ------------------------------------------------------------------

    def _handle_event(self, session_id: int, event: CaptureEvent) -> None:
        with self._lock:
            session = self._session
            if session is None or session.session_id != session_id or session.processed:
                return
            kind = event.kind
            if kind == CaptureEventKind.STARTED.value:
                self._on_started(session)
            elif kind == CaptureEventKind.CHUNK.value:
                self._on_chunk(session, event)
            elif kind == CaptureEventKind.SPEECH_ENDED.value:
                self._on_speech_ended(session)
            elif kind == CaptureEventKind.ENDED.value:
                self._on_provider_ended(session)
            elif kind == CaptureEventKind.ERROR.value:
                self._on_provider_error(session, event)

    def _on_started(self, session: CaptureSession) -> None:
        if self._state != CaptureState.STARTING:
            return
        self._start.disarm()
        self._transition(CaptureState.LISTENING)
        session.last_activity_at = time.monotonic()
        session_id = session.session_id
        self._silence.arm(lambda: self._on_timeout(session_id, "silence"), self._config.silence_ms)
        self._ceiling.arm(lambda: self._on_timeout(session_id, "ceiling"), self._config.hard_ceiling_ms)

    def _on_chunk(self, session: CaptureSession, event: CaptureEvent) -> None:
        if self._state == CaptureState.STARTING:
            self._on_started(session)
        if self._state not in (CaptureState.LISTENING, CaptureState.FINALIZING):
            return
        if not event.is_final and not self._config.interim_results:
            return

        session.raw_chunks.append(
            TranscriptChunk(text=event.text, is_final=event.is_final, confidence=event.confidence)
        )
        session.normalized_text = self._normalize(" ".join(session.segments()))
        session.last_activity_at = time.monotonic()
        self._silence.feed_activity()
        if self._on_partial:
            self._on_partial(session.normalized_text)

        if not event.is_final or not self._normalize(event.text):
            return
        if self._config.continuous and self._state != CaptureState.FINALIZING:
            return
        self._complete(session)

    def _on_speech_ended(self, session: CaptureSession) -> None:
        if self._state != CaptureState.LISTENING:
            return
        self._transition(CaptureState.FINALIZING)
        if self._usable(session):
            self._complete(session)
            return
        self._safe_stop_provider()

    def _on_provider_ended(self, session: CaptureSession) -> None:
        if session.normalized_text:
            self._complete(session)
        elif session.manual_stop:
            self._finish_manual_stop(session)
        else:
            self._finish(session, CaptureResultKind.NO_SPEECH, message="recognition ended without speech")

    def _on_provider_error(self, session: CaptureSession, event: CaptureEvent) -> None:
        kind = result_kind_for(event.code)
        if kind == CaptureResultKind.NO_SPEECH and session.manual_stop:
            # the user ended the session, not the recognizer
            self._finish_manual_stop(session)
            return
        if kind != CaptureResultKind.CANCELLED:
            self._transition(CaptureState.ERROR)
        self._finish(session, kind, message=event.message or event.code)

    def _on_timeout(self, session_id: int, which: str) -> None:
        with self._lock:
            session = self._session
            if session is None or session.session_id != session_id or session.processed:
                return
            if self._state not in (CaptureState.LISTENING, CaptureState.FINALIZING):
                return
            log.debug("capture.timer_fired", timer=which, session_id=session_id)
            if self._usable(session):
                self._complete(session)
            else:
                self._finish(session, CaptureResultKind.TIMEOUT, message=f"{which} timeout")

    def _on_start_timeout(self, session_id: int) -> None:
        with self._lock:
            session = self._session
            if session is None or session.session_id != session_id or session.processed:
                return
            if self._state != CaptureState.STARTING:
                return
            log.warning("capture.start_timeout", session_id=session_id)
            self._finish(session, CaptureResultKind.OTHER_ERROR, message="provider never started")

    # ------------------------------------------------------------------
    # Terminal handling
    # ------------------------------------------------------------------

    def _usable(self, session: CaptureSession) -> bool:
        return session.has_final() and bool(session.normalized_text)

    def _complete(self, session: CaptureSession) -> None:
        self._transition(CaptureState.FINALIZING)
        self._finish(session, CaptureResultKind.SUCCESS, text=session.normalized_text)

    def _finish_manual_stop(self, session: CaptureSession) -> None:
        if session.normalized_text:
            self._finish(session, CaptureResultKind.SUCCESS, text=session.normalized_text)
        else:
            self._finish(session, CaptureResultKind.TIMEOUT, message="stopped before any speech")

    def _finish(
        self,
        session: CaptureSession,
        kind: CaptureResultKind,
        text: str = "",
        message: str = "",
    ) -> None:
        if session.processed:
            return
        session.processed = True
        self._start.disarm()
        self._silence.disarm()
        self._ceiling.disarm()

        result = CaptureResult(
            kind=kind,
            text=text,
            code=RESULT_CODES.get(kind, ""),
            message=message,
            session_id=session.session_id,
        )
        terminal = _TERMINAL_STATES.get(kind)
        if terminal is None and kind != CaptureResultKind.CANCELLED:
            terminal = CaptureState.ERROR
        if terminal is not None:
            session.state = terminal
            self._transition(terminal)
        self._safe_abort_provider()

        self.policy.on_result(kind)
        if kind in TERMINAL_KINDS:
            self._available = False

        self._last_result = result
        self._session = None
        self._transition(CaptureState.IDLE)
        log.info(
            "capture.result",
            session_id=session.session_id,
            kind=kind.value,
            chars=len(text),
            chunks=len(session.raw_chunks),
            elapsed_ms=int((time.monotonic() - session.started_at) * 1000),
        )
        # callbacks below may start the next session
        self._done.set()

        if result.code and self._on_error:
            self._on_error(result.code, message)
        if kind in TERMINAL_KINDS and self._on_unavailable:
            self._on_unavailable(result.code)
        if kind == CaptureResultKind.SUCCESS and self.confirmation is not None:
            self.confirmation.present(text)
        if self._on_result:
            self._on_result(result)

    def _safe_stop_provider(self) -> None:
        try:
            self._provider.stop()
        except Exception as exc:  # pragma: no cover
            log.warning("capture.provider_stop_failed", error=str(exc))

    def _safe_abort_provider(self) -> None:
        try:
            self._provider.abort()
        except Exception as exc:  # pragma: no cover
            log.warning("capture.provider_abort_failed", error=str(exc))

    def _transition(self, to_state: CaptureState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._session is not None:
            self._session.state = to_state
        log.debug("capture.transition", from_state=from_state.value, to_state=to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
