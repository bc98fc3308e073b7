"""Remote speech synthesis providers.

Both providers turn ``(text, voice_id)`` into audio bytes and report every
failure as ``RemoteSynthesisUnavailable`` so the playback layer can fall back
to the local voice.
"""

from __future__ import annotations

import os
from typing import Callable, Optional, Union

import httpx

from errors import RemoteSynthesisUnavailable
from languages import resolve_language

try:
    import dashscope
    from dashscope.audio.tts_v2 import AudioFormat, SpeechSynthesizer
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    AudioFormat = None  # type: ignore
    SpeechSynthesizer = None  # type: ignore

COSYVOICE_VOICES = {
    "english": "loongstella",
    "chinese": "longxiaochun",
    "default": "longxiaochun",
}

RELAY_VOICES = {
    "english": "EXAVITQu4vr4xnSDxMaL",
    "german": "onwK4e9ZLuTAKqWW03F9",
    "french": "XrExE9yKIg1WjnnlVkGX",
    "spanish": "IKne3meq5aSn9XLyUdCD",
    "italian": "pFZP5JQG7iQjIQuC4Bku",
    "hindi": "SAz9YHcvj6GT2YYXdXww",
    "japanese": "cjVigY5qzO86Huf0OWal",
    "korean": "iP95p4xoKVk53GoZ742B",
    "portuguese": "bIHbv24MWmeRgasZH58o",
    "chinese": "N2lVS1w4EtoT3dr4eOWO",
    "default": "EXAVITQu4vr4xnSDxMaL",
}

TokenSource = Union[str, Callable[[], str]]


def _voice_from_map(voices: dict[str, str], language: str) -> str:
    profile = resolve_language(language)
    return voices.get(profile.name, voices["default"])


class DashscopeSynthesizer:
    def __init__(
        self,
        api_key: str = "",
        model: str = "cosyvoice-v1",
        voices: Optional[dict[str, str]] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._voices = voices or COSYVOICE_VOICES

    def _resolved_key(self) -> str:
        return self._api_key or os.getenv("DASHSCOPE_API_KEY", "")

    def is_authenticated(self) -> bool:
        return bool(self._resolved_key())

    def voice_for(self, language: str) -> str:
        return _voice_from_map(self._voices, language)

    def synthesize(self, text: str, voice_id: str) -> bytes:
        if SpeechSynthesizer is None:
            raise RemoteSynthesisUnavailable("dashscope is not installed")
        api_key = self._resolved_key()
        if not api_key:
            raise RemoteSynthesisUnavailable("No API key configured")

        dashscope.api_key = api_key
        try:
            synthesizer = SpeechSynthesizer(
                model=self._model,
                voice=voice_id,
                format=AudioFormat.WAV_22050HZ_MONO_16BIT,
            )
            audio = synthesizer.call(text)
        except Exception as exc:
            raise self._to_error(exc) from exc
        if not audio:
            raise RemoteSynthesisUnavailable("synthesis returned no audio", retryable=True, fallback=False)
        return bytes(audio)

    def _to_error(self, exc: Exception) -> RemoteSynthesisUnavailable:
        """Map an SDK/network exception to a fallback signal."""
        message = str(exc)
        low = message.lower()
        if "401" in low or "auth" in low or "api key" in low:
            return RemoteSynthesisUnavailable(message, retryable=False, fallback=True)
        if "429" in low or "throttl" in low or "quota" in low:
            return RemoteSynthesisUnavailable(message, retryable=False, fallback=True)
        # network hiccups and unknown SDK errors
        return RemoteSynthesisUnavailable(message, retryable=True, fallback=False)


class HttpRelaySynthesizer:
    """Client for a synthesis relay endpoint.

    The relay takes ``{"text", "voiceId"}`` with a bearer token and answers
    with audio bytes, or with ``{"error", "fallback"}`` JSON when it cannot.
    """

    def __init__(
        self,
        url: str,
        token: TokenSource = "",
        api_key: str = "",
        voices: Optional[dict[str, str]] = None,
        timeout_s: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._url = url
        self._token = token
        self._api_key = api_key
        self._voices = voices or RELAY_VOICES
        self._timeout_s = timeout_s
        self._client = client

    def _access_token(self) -> str:
        token = self._token() if callable(self._token) else self._token
        return (token or "").strip()

    def is_authenticated(self) -> bool:
        return bool(self._url and self._access_token())

    def voice_for(self, language: str) -> str:
        return _voice_from_map(self._voices, language)

    def synthesize(self, text: str, voice_id: str) -> bytes:
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        if self._api_key:
            headers["apikey"] = self._api_key
        try:
            response = self._http().post(
                self._url,
                json={"text": text, "voiceId": voice_id},
                headers=headers,
                timeout=self._timeout_s,
            )
        except httpx.HTTPError as exc:
            raise RemoteSynthesisUnavailable(f"relay request failed: {exc}", retryable=True, fallback=False) from exc

        if response.is_success:
            if not response.content:
                raise RemoteSynthesisUnavailable("relay returned no audio", retryable=True, fallback=False)
            return response.content

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        fallback = bool(payload.get("fallback")) or response.status_code == 503
        message = str(payload.get("error") or f"relay returned HTTP {response.status_code}")
        raise RemoteSynthesisUnavailable(
            message,
            retryable=response.status_code >= 500 and not fallback,
            fallback=fallback,
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client()
        return self._client
