"""On-device speech synthesis with Piper voices.

Voices are ``*.onnx`` models in a directory, each normally paired with an
``.onnx.json`` config. The catalogue is scanned in the background so the
first ``voices()`` call may come back empty; listeners are told whenever the
catalogue changes.
"""

from __future__ import annotations

import io
import json
import threading
import wave
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from audio_output import decode_audio
from errors import LocalSynthesisUnsupported
from models import AudioClip, LocalVoice

log = structlog.get_logger(__name__)

try:
    from piper import PiperVoice, SynthesisConfig
except Exception:  # pragma: no cover
    PiperVoice = None  # type: ignore
    SynthesisConfig = None  # type: ignore


def _voice_from_filename(model: Path) -> LocalVoice:
    # en_US-lessac-medium.onnx
    parts = model.stem.split("-")
    language = parts[0] if parts else "en_US"
    name = parts[1] if len(parts) > 1 else model.stem
    quality = parts[2] if len(parts) > 2 else "medium"
    return LocalVoice(voice_id=model.stem, name=name, language=language, quality=quality, model_path=str(model))


def read_voice(model: Path) -> LocalVoice:
    voice = _voice_from_filename(model)
    config_path = model.with_suffix(".onnx.json")
    if not config_path.exists():
        return voice
    try:
        config = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return voice
    language = config.get("language") or {}
    audio = config.get("audio") or {}
    voice.language = str(language.get("code") or voice.language)
    voice.quality = str(audio.get("quality") or voice.quality)
    voice.sample_rate = int(audio.get("sample_rate") or voice.sample_rate)
    voice.name = str(config.get("dataset") or voice.name)
    return voice


def scan_voice_dir(voice_dir: Path) -> list[LocalVoice]:
    if not voice_dir.is_dir():
        return []
    return [read_voice(model) for model in sorted(voice_dir.glob("*.onnx"))]


class PiperLocalSynthesizer:
    def __init__(self, voice_dir: Path | str) -> None:
        self._voice_dir = Path(voice_dir).expanduser()
        self._lock = threading.Lock()
        self._voices: list[LocalVoice] = []
        self._models: dict[str, Any] = {}
        self._listeners: list[Callable[[], None]] = []
        self._scan_thread: Optional[threading.Thread] = None

    def load_async(self) -> threading.Thread:
        """Scan the voice directory on a background thread."""
        with self._lock:
            if self._scan_thread is not None and self._scan_thread.is_alive():
                return self._scan_thread
            self._scan_thread = threading.Thread(target=self.refresh, name="piper-voice-scan", daemon=True)
            self._scan_thread.start()
            return self._scan_thread

    def refresh(self) -> list[LocalVoice]:
        voices = scan_voice_dir(self._voice_dir)
        with self._lock:
            changed = [v.voice_id for v in voices] != [v.voice_id for v in self._voices]
            self._voices = voices
            listeners = list(self._listeners)
        if changed:
            log.info("local_tts.voices_changed", count=len(voices), voice_dir=str(self._voice_dir))
            for listener in listeners:
                listener()
        return voices

    def voices(self) -> list[LocalVoice]:
        with self._lock:
            return list(self._voices)

    def add_voices_changed_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def synthesize(self, text: str, voice: LocalVoice, rate: float) -> AudioClip:
        if PiperVoice is None:
            raise LocalSynthesisUnsupported("piper-tts is not installed")
        model = self._load(voice)
        length_scale = 1.0 / rate if rate > 0 else None
        buf = io.BytesIO()
        try:
            with wave.open(buf, "wb") as wav_file:
                model.synthesize_wav(text, wav_file, syn_config=SynthesisConfig(length_scale=length_scale))
        except Exception as exc:
            raise LocalSynthesisUnsupported(f"voice {voice.voice_id} failed to render: {exc}") from exc
        return decode_audio(buf.getvalue())

    def _load(self, voice: LocalVoice) -> Any:
        with self._lock:
            model = self._models.get(voice.voice_id)
        if model is not None:
            return model
        try:
            model = PiperVoice.load(voice.model_path)
        except Exception as exc:
            raise LocalSynthesisUnsupported(f"cannot load voice {voice.voice_id}: {exc}") from exc
        with self._lock:
            self._models[voice.voice_id] = model
        return model
