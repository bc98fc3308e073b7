"""Protocol interfaces for the capability providers used by the core."""

from __future__ import annotations

from queue import Queue
from typing import Callable, Protocol

from models import AudioClip, AudioFrame, CaptureConfig, CaptureEvent, LocalVoice, PasteResult


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class CaptureProvider(Protocol):
    def start(self, config: CaptureConfig, on_event: Callable[[CaptureEvent], None]) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...


class RemoteSynthesizer(Protocol):
    def is_authenticated(self) -> bool: ...

    def voice_for(self, language: str) -> str: ...

    def synthesize(self, text: str, voice_id: str) -> bytes: ...


class LocalSynthesizer(Protocol):
    def voices(self) -> list[LocalVoice]: ...

    def add_voices_changed_listener(self, listener: Callable[[], None]) -> None: ...

    def synthesize(self, text: str, voice: LocalVoice, rate: float) -> AudioClip: ...


class AudioSink(Protocol):
    def play(self, clip: AudioClip) -> None: ...

    def wait(self) -> None: ...

    def stop(self) -> None: ...


class PasteService(Protocol):
    def paste_text(self, text: str) -> PasteResult: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_language(self) -> str: ...

    def set_language(self, language: str) -> None: ...
