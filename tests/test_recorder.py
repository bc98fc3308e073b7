"""Tests for MicrophoneRecorder."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import pytest

from errors import CaptureDeviceError
from models import AudioFrame
from recorder import MicrophoneRecorder


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class _FakeNp:
    """Minimal numpy stand-in so recorder._on_audio doesn't bail."""

    int16 = "int16"

    @staticmethod
    def asarray(data, dtype=None):  # noqa: ANN001, ANN205
        return data


class _FakeAudioInput:
    """Fake audio input similar to what the sounddevice callback provides."""

    def __init__(self, n_samples: int = 1600) -> None:
        self._data = b"\x00\x00" * n_samples

    def tobytes(self) -> bytes:
        return self._data


# ---------------------------------------------------------------
# Basic start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_creates_stream_and_stop_emits_sentinel(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = MicrophoneRecorder(sample_rate=16000, chunk_ms=100)
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)

    assert recorder.running is True
    assert mock_sd.InputStream.call_args.kwargs["blocksize"] == 1600
    assert mock_sd.InputStream.call_args.kwargs["dtype"] == "int16"
    mock_stream.start.assert_called_once()

    recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert q.get_nowait() is None
    assert recorder.running is False


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = MicrophoneRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.start(q)

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


@patch("recorder.sd")
def test_stop_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = MicrophoneRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()
    recorder.stop()

    # every stop wakes a waiting consumer
    assert q.get_nowait() is None
    assert q.get_nowait() is None


# ---------------------------------------------------------------
# Device failures
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_missing_device_maps_to_audio_capture(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = RuntimeError("Error querying device -1")

    recorder = MicrophoneRecorder()
    with pytest.raises(CaptureDeviceError) as info:
        recorder.start(Queue())

    assert info.value.provider_code == "audio-capture"
    assert recorder.running is False


@patch("recorder.sd")
def test_permission_failure_maps_to_not_allowed(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value.start.side_effect = RuntimeError("Microphone permission denied")

    with pytest.raises(CaptureDeviceError) as info:
        MicrophoneRecorder().start(Queue())

    assert info.value.provider_code == "not-allowed"


def test_start_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    with pytest.raises(CaptureDeviceError, match="sounddevice is not installed"):
        MicrophoneRecorder().start(Queue())


# ---------------------------------------------------------------
# Audio callback pushes frames to queue
# ---------------------------------------------------------------

@patch("recorder.np", _FakeNp())
@patch("recorder.sd")
def test_callback_pushes_audio_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = MicrophoneRecorder(sample_rate=16000, channels=1, chunk_ms=100)
    q: Queue[AudioFrame | None] = Queue(maxsize=50)
    recorder.start(q)

    recorder._on_audio(_FakeAudioInput(1600), frames=1600, time_info=None, status=None)

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert frame.sample_rate == 16000
    assert frame.channels == 1
    assert len(frame.pcm16_bytes) == 1600 * 2

    recorder.stop()


@patch("recorder.np", _FakeNp())
@patch("recorder.sd")
def test_queue_full_increments_dropped_chunks(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = MicrophoneRecorder()
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    recorder.start(q)

    recorder._on_audio(_FakeAudioInput(), frames=1600, time_info=None, status=None)
    assert recorder.dropped_chunks == 0
    recorder._on_audio(_FakeAudioInput(), frames=1600, time_info=None, status=None)
    assert recorder.dropped_chunks == 1

    recorder.stop()


@patch("recorder.np", _FakeNp())
@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = MicrophoneRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()
    q.get_nowait()

    recorder._on_audio(_FakeAudioInput(), frames=1600, time_info=None, status=None)
    assert q.empty()
