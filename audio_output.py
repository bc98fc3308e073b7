"""Audio decoding and speaker output."""

from __future__ import annotations

import io
from typing import Optional

from errors import PlaybackDeviceError
from models import AudioClip

try:
    import soundfile as sf
except Exception:  # pragma: no cover
    sf = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore


def decode_audio(data: bytes) -> AudioClip:
    """Decode WAV/MP3/OGG bytes into float32 samples."""
    if sf is None:
        raise PlaybackDeviceError("soundfile is not installed")
    if not data:
        raise PlaybackDeviceError("empty audio payload")
    try:
        samples, sample_rate = sf.read(io.BytesIO(data), dtype="float32")
    except Exception as exc:
        raise PlaybackDeviceError(f"undecodable audio: {exc}") from exc
    return AudioClip(samples=samples, sample_rate=int(sample_rate))


class SoundDeviceSink:
    """Plays one clip at a time on the default (or given) output device."""

    def __init__(self, device: Optional[int | str] = None) -> None:
        self._device = device
        self._playing = False

    def play(self, clip: AudioClip) -> None:
        if sd is None:
            raise PlaybackDeviceError("sounddevice is not installed")
        try:
            sd.play(clip.samples, samplerate=clip.sample_rate, device=self._device)
        except (sd.PortAudioError, ValueError) as exc:
            raise PlaybackDeviceError(str(exc)) from exc
        self._playing = True

    def wait(self) -> None:
        if sd is None or not self._playing:
            return
        sd.wait()
        self._playing = False

    def stop(self) -> None:
        if sd is None or not self._playing:
            return
        self._playing = False
        sd.stop()
