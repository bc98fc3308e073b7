"""Speech capture provider backed by DashScope realtime recognition.

Microphone frames are pumped from the recorder queue into a streaming
``Recognition`` session. The SDK calls back on its own thread with interim
and sentence-final results; those become ``CaptureEvent``s. ``stop`` closes
the microphone and lets the session flush; ``abort`` closes the microphone
and silences every further event.
"""

from __future__ import annotations

import os
import threading
from queue import Empty, Queue
from typing import Any, Callable, Optional

import structlog

from errors import CaptureDeviceError
from interfaces import Recorder
from models import AudioFrame, CaptureConfig, CaptureEvent, CaptureEventKind, ProviderErrorCode
from recorder import MicrophoneRecorder

log = structlog.get_logger(__name__)

try:
    import dashscope
    from dashscope.audio.asr import Recognition, RecognitionCallback
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    Recognition = None  # type: ignore
    RecognitionCallback = object  # type: ignore


def _is_sentence_end(sentence: dict) -> bool:
    if "sentence_end" in sentence:
        return bool(sentence["sentence_end"])
    return sentence.get("end_time") is not None


def _provider_code(message: str) -> str:
    low = message.lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low or "access denied" in low:
        return ProviderErrorCode.NOT_ALLOWED.value
    return ProviderErrorCode.OTHER.value


class _RecognitionListener(RecognitionCallback):
    def __init__(self, provider: "DashscopeCaptureProvider") -> None:
        self._provider = provider

    def on_open(self) -> None:
        self._provider._emit(CaptureEvent(kind=CaptureEventKind.STARTED.value))

    def on_event(self, result: Any) -> None:
        sentence = result.get_sentence()
        if isinstance(sentence, list):
            sentence = sentence[-1] if sentence else {}
        if not isinstance(sentence, dict):
            return
        text = str(sentence.get("text", ""))
        if not text:
            return
        self._provider._heard_text = True
        self._provider._emit(
            CaptureEvent(kind=CaptureEventKind.CHUNK.value, text=text, is_final=_is_sentence_end(sentence))
        )

    def on_error(self, result: Any) -> None:
        message = str(getattr(result, "message", "") or result)
        self._provider._emit(CaptureEvent(kind=CaptureEventKind.ERROR.value, code=_provider_code(message), message=message))

    def on_complete(self) -> None:
        self._provider._on_complete()

    def on_close(self) -> None:
        log.debug("recognizer.closed")


class DashscopeCaptureProvider:
    def __init__(
        self,
        api_key: str = "",
        recorder: Optional[Recorder] = None,
        model: str = "paraformer-realtime-v2",
        sample_rate: int = 16000,
        queue_maxsize: int = 50,
        restart_join_s: float = 2.0,
    ) -> None:
        self._api_key = api_key
        self._recorder = recorder or MicrophoneRecorder(sample_rate=sample_rate)
        self._model = model
        self._sample_rate = sample_rate
        self._queue_maxsize = queue_maxsize
        self._restart_join_s = restart_join_s
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._aborted = threading.Event()
        self._recognition: Any = None
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._on_event: Optional[Callable[[CaptureEvent], None]] = None
        self._heard_text = False

    def start(self, config: CaptureConfig, on_event: Callable[[CaptureEvent], None]) -> None:
        with self._lock:
            previous = self._thread
            if previous is not None and previous.is_alive():
                # the last session is still flushing its recognition
                previous.join(timeout=self._restart_join_s)
                if previous.is_alive():
                    raise RuntimeError("previous recognition session is still closing")
            if Recognition is None:
                raise RuntimeError("dashscope is not installed")
            api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
            if not api_key:
                raise CaptureDeviceError("No API key configured", ProviderErrorCode.NOT_ALLOWED.value)

            dashscope.api_key = api_key
            self._on_event = on_event
            self._aborted.clear()
            self._heard_text = False
            self._audio_queue = Queue(maxsize=self._queue_maxsize)
            hint = config.language.replace("_", "-").split("-")[0].lower()
            self._recognition = Recognition(
                model=self._model,
                format="pcm",
                sample_rate=self._sample_rate,
                callback=_RecognitionListener(self),
                language_hints=[hint],
            )
            self._recognition.start()
            try:
                self._recorder.start(self._audio_queue)
            except Exception:
                self._aborted.set()
                self._close_recognition()
                raise
            self._thread = threading.Thread(target=self._pump, name="recognizer-pump", daemon=True)
            self._thread.start()
            log.debug("recognizer.started", model=self._model, language=hint)

    def stop(self) -> None:
        self._recorder.stop()

    def abort(self) -> None:
        self._aborted.set()
        self._recorder.stop()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _pump(self) -> None:
        """Forward microphone frames until the sentinel, then flush."""
        audio_queue = self._audio_queue
        recognition = self._recognition
        if audio_queue is None or recognition is None:
            return
        while not self._aborted.is_set():
            try:
                frame = audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:  # Sentinel
                break
            try:
                recognition.send_audio_frame(frame.pcm16_bytes)
            except Exception as exc:
                self._emit(
                    CaptureEvent(kind=CaptureEventKind.ERROR.value, code=ProviderErrorCode.OTHER.value, message=str(exc))
                )
                break
        self._close_recognition()

    def _close_recognition(self) -> None:
        recognition = self._recognition
        if recognition is None:
            return
        try:
            recognition.stop()
        except Exception as exc:
            if not self._aborted.is_set():
                self._emit(
                    CaptureEvent(kind=CaptureEventKind.ERROR.value, code=_provider_code(str(exc)), message=str(exc))
                )

    def _on_complete(self) -> None:
        if self._heard_text:
            self._emit(CaptureEvent(kind=CaptureEventKind.ENDED.value))
        else:
            self._emit(
                CaptureEvent(
                    kind=CaptureEventKind.ERROR.value,
                    code=ProviderErrorCode.NO_SPEECH.value,
                    message="no speech detected",
                )
            )

    def _emit(self, event: CaptureEvent) -> None:
        if self._aborted.is_set() or self._on_event is None:
            return
        self._on_event(event)
