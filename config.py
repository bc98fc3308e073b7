"""Simple JSON-based config store and capture presets."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path

from languages import resolve_language
from models import CaptureConfig

CAPTURE_PRESETS: dict[str, CaptureConfig] = {
    "single_sentence": CaptureConfig(continuous=False, interim_results=False, silence_ms=5000, hard_ceiling_ms=5000),
    "robust": CaptureConfig(continuous=False, interim_results=True, silence_ms=3000, hard_ceiling_ms=8000),
    "dictation": CaptureConfig(continuous=True, interim_results=True, silence_ms=1500, hard_ceiling_ms=8000),
    "confirm_strict": CaptureConfig(
        continuous=False, interim_results=True, silence_ms=3000, hard_ceiling_ms=8000, aggressive_collapse=True
    ),
}

DEFAULT_CAPTURE_MODE = "robust"


def capture_config_for(mode: str, language: str = "english") -> CaptureConfig:
    preset = CAPTURE_PRESETS.get(mode, CAPTURE_PRESETS[DEFAULT_CAPTURE_MODE])
    return replace(preset, language=resolve_language(language).locale)


@dataclass
class VoiceSettings:
    api_key: str
    hotkey: str
    language: str
    capture_mode: str
    confirm_results: bool
    fallback_threshold: int
    piper_voice_dir: str
    relay_url: str
    relay_token: str

    @property
    def capture_config(self) -> CaptureConfig:
        return capture_config_for(self.capture_mode, self.language)


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voice_core" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", "Key.alt_l"))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_language(self) -> str:
        data = self._read_all()
        return str(data.get("language", "english"))

    def set_language(self, language: str) -> None:
        self._set("language", resolve_language(language).name)

    def get_capture_mode(self) -> str:
        data = self._read_all()
        mode = str(data.get("capture_mode", DEFAULT_CAPTURE_MODE))
        return mode if mode in CAPTURE_PRESETS else DEFAULT_CAPTURE_MODE

    def set_capture_mode(self, mode: str) -> None:
        if mode not in CAPTURE_PRESETS:
            raise ValueError(f"unknown capture mode: {mode}")
        self._set("capture_mode", mode)

    def load_settings(self) -> VoiceSettings:
        data = self._read_all()
        try:
            threshold = max(1, int(data.get("fallback_threshold", 2)))
        except (TypeError, ValueError):
            threshold = 2
        return VoiceSettings(
            api_key=self.get_api_key(),
            hotkey=self.get_hotkey(),
            language=self.get_language(),
            capture_mode=self.get_capture_mode(),
            confirm_results=bool(data.get("confirm_results", True)),
            fallback_threshold=threshold,
            piper_voice_dir=str(data.get("piper_voice_dir", "~/.local/share/piper")),
            relay_url=str(data.get("relay_url", "")),
            relay_token=str(data.get("relay_token", "")),
        )

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
