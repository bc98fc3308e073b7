"""Tests for DashscopeCaptureProvider."""

from __future__ import annotations

import time
from queue import Queue
from types import SimpleNamespace

import pytest

import recognizer
from capture_controller import CaptureController
from errors import CaptureDeviceError
from models import AudioFrame, CaptureConfig, CaptureEvent, CaptureEventKind, CaptureResultKind, CaptureState
from recognizer import DashscopeCaptureProvider, _is_sentence_end, _provider_code


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class FakeRecorder:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.queue: Queue[AudioFrame | None] | None = None
        self.stops = 0

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        if self.error is not None:
            raise self.error
        self.queue = audio_queue

    def stop(self) -> None:
        self.stops += 1
        if self.queue is not None:
            self.queue.put_nowait(None)

    def feed(self, payload: bytes) -> None:
        assert self.queue is not None
        self.queue.put_nowait(AudioFrame(pcm16_bytes=payload))


class FakeResult:
    def __init__(self, sentence) -> None:  # noqa: ANN001
        self._sentence = sentence

    def get_sentence(self):  # noqa: ANN201
        return self._sentence


class FakeRecognition:
    instances: list["FakeRecognition"] = []

    def __init__(self, model, format, sample_rate, callback, language_hints=None) -> None:  # noqa: ANN001, A002
        self.model = model
        self.format = format
        self.sample_rate = sample_rate
        self.callback = callback
        self.language_hints = language_hints
        self.frames: list[bytes] = []
        self.started = False
        self.stopped = False
        FakeRecognition.instances.append(self)

    def start(self) -> None:
        self.started = True
        self.callback.on_open()

    def send_audio_frame(self, data: bytes) -> None:
        self.frames.append(data)

    def stop(self) -> None:
        self.callback.on_complete()
        self.stopped = True


class SlowStopRecognition(FakeRecognition):
    delay = 0.3

    def stop(self) -> None:
        time.sleep(SlowStopRecognition.delay)
        super().stop()


def _wait_until(predicate, timeout: float = 2.0) -> None:  # noqa: ANN001
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not reached")


@pytest.fixture
def fake_sdk(monkeypatch: pytest.MonkeyPatch) -> type[FakeRecognition]:
    FakeRecognition.instances = []
    monkeypatch.setattr(recognizer, "Recognition", FakeRecognition)
    monkeypatch.setattr(recognizer, "dashscope", SimpleNamespace(api_key=""))
    monkeypatch.delenv("DASHSCOPE_API_KEY", raising=False)
    return FakeRecognition


def _kinds(events: list[CaptureEvent]) -> list[str]:
    return [e.kind for e in events]


# ---------------------------------------------------------------
# Result helpers
# ---------------------------------------------------------------

def test_sentence_end_detection() -> None:
    assert _is_sentence_end({"text": "hi", "sentence_end": True}) is True
    assert _is_sentence_end({"text": "hi", "sentence_end": False, "end_time": 900}) is False
    assert _is_sentence_end({"text": "hi", "end_time": 900}) is True
    assert _is_sentence_end({"text": "hi", "end_time": None}) is False


def test_provider_code_mapping() -> None:
    assert _provider_code("401 Unauthorized") == "not-allowed"
    assert _provider_code("Invalid API key provided") == "not-allowed"
    assert _provider_code("socket closed") == "other"


# ---------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------

def test_streams_frames_and_reports_chunks(fake_sdk: type[FakeRecognition]) -> None:
    recorder = FakeRecorder()
    provider = DashscopeCaptureProvider(api_key="sk-test", recorder=recorder)
    events: list[CaptureEvent] = []

    provider.start(CaptureConfig(language="de-DE"), events.append)
    recognition = fake_sdk.instances[0]
    assert recognition.language_hints == ["de"]
    assert recognition.format == "pcm"
    assert recognizer.dashscope.api_key == "sk-test"

    recorder.feed(b"\x01\x02")
    _wait_until(lambda: recognition.frames == [b"\x01\x02"])

    recognition.callback.on_event(FakeResult({"text": "hallo", "sentence_end": False}))
    recognition.callback.on_event(FakeResult({"text": "hallo welt", "sentence_end": True}))
    provider.stop()
    _wait_until(lambda: recognition.stopped)

    assert _kinds(events) == ["started", "chunk", "chunk", "ended"]
    assert [(e.text, e.is_final) for e in events[1:3]] == [("hallo", False), ("hallo welt", True)]


def test_sentence_lists_use_latest_entry(fake_sdk: type[FakeRecognition]) -> None:
    provider = DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder())
    events: list[CaptureEvent] = []
    provider.start(CaptureConfig(), events.append)

    callback = fake_sdk.instances[0].callback
    callback.on_event(FakeResult([{"text": "one", "sentence_end": True}, {"text": "two", "sentence_end": False}]))
    callback.on_event(FakeResult({"text": ""}))
    callback.on_event(FakeResult(None))

    assert [(e.text, e.is_final) for e in events if e.kind == "chunk"] == [("two", False)]
    provider.abort()


def test_completion_without_text_is_no_speech(fake_sdk: type[FakeRecognition]) -> None:
    provider = DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder())
    events: list[CaptureEvent] = []
    provider.start(CaptureConfig(), events.append)

    provider.stop()
    _wait_until(lambda: fake_sdk.instances[0].stopped)

    assert events[-1].kind == CaptureEventKind.ERROR.value
    assert events[-1].code == "no-speech"


def test_sdk_error_is_reported(fake_sdk: type[FakeRecognition]) -> None:
    provider = DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder())
    events: list[CaptureEvent] = []
    provider.start(CaptureConfig(), events.append)

    fake_sdk.instances[0].callback.on_error(SimpleNamespace(message="401 invalid api key"))

    assert events[-1].kind == "error"
    assert events[-1].code == "not-allowed"
    provider.abort()


def test_abort_silences_further_events(fake_sdk: type[FakeRecognition]) -> None:
    recorder = FakeRecorder()
    provider = DashscopeCaptureProvider(api_key="sk", recorder=recorder)
    events: list[CaptureEvent] = []
    provider.start(CaptureConfig(), events.append)
    recognition = fake_sdk.instances[0]

    provider.abort()
    recognition.callback.on_event(FakeResult({"text": "late", "sentence_end": True}))
    _wait_until(lambda: recognition.stopped)

    assert _kinds(events) == ["started"]
    assert recorder.stops == 1


# ---------------------------------------------------------------
# Start failures
# ---------------------------------------------------------------

def test_missing_key_is_not_allowed(fake_sdk: type[FakeRecognition]) -> None:
    provider = DashscopeCaptureProvider(recorder=FakeRecorder())
    with pytest.raises(CaptureDeviceError) as info:
        provider.start(CaptureConfig(), lambda event: None)

    assert info.value.provider_code == "not-allowed"
    assert fake_sdk.instances == []


def test_key_from_environment(fake_sdk: type[FakeRecognition], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DASHSCOPE_API_KEY", "sk-env")
    provider = DashscopeCaptureProvider(recorder=FakeRecorder())
    provider.start(CaptureConfig(), lambda event: None)

    assert recognizer.dashscope.api_key == "sk-env"
    provider.abort()


def test_recorder_failure_closes_recognition(fake_sdk: type[FakeRecognition]) -> None:
    recorder = FakeRecorder(error=CaptureDeviceError("no input device"))
    provider = DashscopeCaptureProvider(api_key="sk", recorder=recorder)
    events: list[CaptureEvent] = []

    with pytest.raises(CaptureDeviceError):
        provider.start(CaptureConfig(), events.append)

    assert fake_sdk.instances[0].stopped is True
    assert _kinds(events) == ["started"]


def test_start_without_sdk(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(recognizer, "Recognition", None)
    with pytest.raises(RuntimeError, match="dashscope is not installed"):
        DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder()).start(CaptureConfig(), lambda event: None)


# ---------------------------------------------------------------
# Restart while the previous session is still closing
# ---------------------------------------------------------------

def test_restart_waits_for_previous_session_to_close(
    fake_sdk: type[FakeRecognition], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(recognizer, "Recognition", SlowStopRecognition)
    provider = DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder())
    events: list[CaptureEvent] = []

    provider.start(CaptureConfig(), lambda event: None)
    provider.abort()
    provider.start(CaptureConfig(), events.append)

    first, second = fake_sdk.instances
    assert first.stopped is True
    assert second.started is True
    assert _kinds(events) == ["started"]
    provider.abort()


def test_restart_gives_up_when_previous_session_hangs(
    fake_sdk: type[FakeRecognition], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(recognizer, "Recognition", SlowStopRecognition)
    monkeypatch.setattr(SlowStopRecognition, "delay", 0.5)
    provider = DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder(), restart_join_s=0.05)

    provider.start(CaptureConfig(), lambda event: None)
    provider.abort()
    with pytest.raises(RuntimeError, match="still closing"):
        provider.start(CaptureConfig(), lambda event: None)

    assert len(fake_sdk.instances) == 1
    _wait_until(lambda: fake_sdk.instances[0].stopped)


# ---------------------------------------------------------------
# Driven by CaptureController
# ---------------------------------------------------------------

def test_controller_manual_stop_without_speech_times_out(fake_sdk: type[FakeRecognition]) -> None:
    controller = CaptureController(
        DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder()), finalize_timeout_s=2.0
    )

    assert controller.start_capture() is True
    assert controller.state == CaptureState.LISTENING
    controller.stop_capture()

    assert controller.last_result.kind == CaptureResultKind.TIMEOUT
    assert controller.state == CaptureState.IDLE


def test_controller_manual_stop_keeps_interim_text(fake_sdk: type[FakeRecognition]) -> None:
    controller = CaptureController(
        DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder()), finalize_timeout_s=2.0
    )
    controller.start_capture()
    fake_sdk.instances[0].callback.on_event(FakeResult({"text": "hello there", "sentence_end": False}))

    controller.stop_capture()

    assert controller.last_result.kind == CaptureResultKind.SUCCESS
    assert controller.last_result.text == "hello there"


def test_controller_restarts_after_slow_close(
    fake_sdk: type[FakeRecognition], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(recognizer, "Recognition", SlowStopRecognition)
    controller = CaptureController(DashscopeCaptureProvider(api_key="sk", recorder=FakeRecorder()))

    controller.start_capture()
    controller.cancel_capture()

    assert controller.start_capture() is True
    assert controller.state == CaptureState.LISTENING
    controller.cancel_capture()
