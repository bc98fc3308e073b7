"""Speech output: text sanitation, remote synthesis with local fallback.

Only one playback is ever live. ``speak`` cancels whatever is playing before
it does anything else, and the audio sink is owned here: built on first use,
torn down whenever a playback is cancelled or ``stop`` is called.

Remote failures of any kind (network, quota, provider asking for fallback,
undecodable or unplayable audio) are logged and answered with the local
voice. If the local engine has no voice either, the returned future resolves
with a ``FAILED`` outcome rather than an exception.
"""

from __future__ import annotations

import re
import threading
import time
from concurrent.futures import Future
from typing import Callable, Optional

import structlog

from audio_output import SoundDeviceSink, decode_audio
from errors import LocalSynthesisUnsupported, PlaybackDeviceError, RemoteSynthesisUnavailable
from interfaces import AudioSink, LocalSynthesizer, RemoteSynthesizer
from languages import resolve_language
from models import (
    AudioClip,
    LanguageProfile,
    LocalVoice,
    PlaybackOutcome,
    PlaybackRequest,
    PlaybackStatus,
    SynthesisSource,
)

log = structlog.get_logger(__name__)

DEFAULT_MAX_CHARS = 400

QUALITY_RANK = {"x_low": 0, "low": 1, "medium": 2, "high": 3}

_CODE_BLOCK = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE = re.compile(r"`([^`]*)`")
_MD_LINK = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_URL = re.compile(r"https?://\S+")
_HTML_TAG = re.compile(r"</?[A-Za-z][^>]*>")
_HEADER = re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE)
_LIST_MARK = re.compile(r"^\s*(?:[-+>]|\d+\.)\s+", re.MULTILINE)
_EMPHASIS = re.compile(r"[*_~]+")
_PICTOGRAPHS = re.compile(
    "["
    "\U0001F000-\U0001FAFF"  # emoji, pictographs, regional indicators
    "\U00002600-\U000027BF"  # misc symbols, dingbats
    "\U00002B00-\U00002BFF"  # arrows, stars
    "\U0000FE00-\U0000FE0F"  # variation selectors
    "\U0000200D"
    "]"
)
_WHITESPACE = re.compile(r"\s+")


def sanitize_for_speech(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """Strip markup and pictographs, then bound the length."""
    if not text:
        return ""
    cleaned = _CODE_BLOCK.sub(" ", text)
    cleaned = _INLINE_CODE.sub(r"\1", cleaned)
    cleaned = _MD_LINK.sub(r"\1", cleaned)
    cleaned = _URL.sub(" ", cleaned)
    cleaned = _HTML_TAG.sub(" ", cleaned)
    cleaned = _HEADER.sub("", cleaned)
    cleaned = _LIST_MARK.sub("", cleaned)
    cleaned = _EMPHASIS.sub("", cleaned)
    cleaned = _PICTOGRAPHS.sub("", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if len(cleaned) <= max_chars:
        return cleaned
    cut = cleaned[:max_chars]
    space = cut.rfind(" ")
    if space > max_chars // 2:
        cut = cut[:space]
    return cut.strip()


def select_local_voice(voices: list[LocalVoice], profile: LanguageProfile) -> Optional[LocalVoice]:
    """Best installed voice for the profile's language, else the engine default."""
    if not voices:
        return None
    locale = profile.locale.replace("-", "_").lower()
    candidates = [voice for voice in voices if voice.prefix == profile.prefix]
    if not candidates:
        return voices[0]
    return max(
        candidates,
        key=lambda voice: (
            QUALITY_RANK.get(voice.quality, 0),
            voice.language.replace("-", "_").lower() == locale,
        ),
    )


def _has_language(voices: list[LocalVoice], profile: LanguageProfile) -> bool:
    return any(voice.prefix == profile.prefix for voice in voices)


class PlaybackOrchestrator:
    def __init__(
        self,
        local: LocalSynthesizer,
        remote: Optional[RemoteSynthesizer] = None,
        sink_factory: Callable[[], AudioSink] = SoundDeviceSink,
        decoder: Callable[[bytes], AudioClip] = decode_audio,
        max_chars: int = DEFAULT_MAX_CHARS,
        voice_wait_s: float = 2.0,
        on_status: Optional[Callable[[PlaybackRequest], None]] = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self._sink_factory = sink_factory
        self._decoder = decoder
        self.max_chars = max_chars
        self._voice_wait_s = voice_wait_s
        self._on_status = on_status

        self._lock = threading.RLock()
        self._active: Optional[PlaybackRequest] = None
        self._sink: Optional[AudioSink] = None
        self._request_id = 0
        self._voices_changed = threading.Event()
        self._waited_prefixes: set[str] = set()
        local.add_voices_changed_listener(self._voices_changed.set)

    @property
    def active_request(self) -> Optional[PlaybackRequest]:
        return self._active

    @property
    def is_speaking(self) -> bool:
        active = self._active
        return active is not None and active.status == PlaybackStatus.PLAYING

    def speak(self, text: str, language: str = "english") -> Future[PlaybackOutcome]:
        future: Future[PlaybackOutcome] = Future()
        with self._lock:
            self._cancel_active_locked()
            self._request_id += 1
            request = PlaybackRequest(
                request_id=self._request_id,
                sanitized_text=sanitize_for_speech(text, self.max_chars),
                language_tag=language,
            )
            if not request.sanitized_text:
                request.status = PlaybackStatus.SKIPPED
                future.set_result(self._outcome(request))
                return future
            self._active = request

        worker = threading.Thread(
            target=self._run,
            args=(request, resolve_language(language), future),
            name=f"playback-{request.request_id}",
            daemon=True,
        )
        worker.start()
        return future

    def stop(self) -> None:
        with self._lock:
            self._cancel_active_locked()
            self._teardown_sink_locked()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run(self, request: PlaybackRequest, profile: LanguageProfile, future: Future[PlaybackOutcome]) -> None:
        try:
            outcome = self._render(request, profile)
        except Exception as exc:
            log.exception("playback.crashed", request_id=request.request_id)
            self._settle(request, PlaybackStatus.FAILED)
            future.set_exception(exc)
            return
        future.set_result(outcome)

    def _render(self, request: PlaybackRequest, profile: LanguageProfile) -> PlaybackOutcome:
        remote = self._remote
        if remote is not None and remote.is_authenticated():
            try:
                return self._render_remote(request, remote)
            except RemoteSynthesisUnavailable as exc:
                log.warning(
                    "playback.remote_unavailable",
                    request_id=request.request_id,
                    error=str(exc),
                    retryable=exc.retryable,
                    fallback=exc.fallback,
                )
            except PlaybackDeviceError as exc:
                log.warning("playback.remote_audio_failed", request_id=request.request_id, error=str(exc))
        elif remote is not None:
            log.info("playback.remote_skipped", request_id=request.request_id, reason="not authenticated")

        if request.status == PlaybackStatus.CANCELLED:
            return self._outcome(request)
        try:
            return self._render_local(request, profile)
        except LocalSynthesisUnsupported as exc:
            log.error("playback.local_unsupported", request_id=request.request_id, error=str(exc))
            return self._settle(request, PlaybackStatus.FAILED, str(exc))
        except PlaybackDeviceError as exc:
            log.error("playback.local_audio_failed", request_id=request.request_id, error=str(exc))
            return self._settle(request, PlaybackStatus.FAILED, str(exc))

    def _render_remote(self, request: PlaybackRequest, remote: RemoteSynthesizer) -> PlaybackOutcome:
        if not self._mark(request, PlaybackStatus.SYNTHESIZING, SynthesisSource.REMOTE):
            return self._outcome(request)
        voice_id = remote.voice_for(request.language_tag)
        audio = remote.synthesize(request.sanitized_text, voice_id)
        clip = self._decoder(audio)
        return self._play_clip(request, clip, SynthesisSource.REMOTE)

    def _render_local(self, request: PlaybackRequest, profile: LanguageProfile) -> PlaybackOutcome:
        voice = self._pick_voice(profile)
        if not self._mark(request, PlaybackStatus.SYNTHESIZING, SynthesisSource.LOCAL):
            return self._outcome(request)
        log.debug(
            "playback.local_voice",
            request_id=request.request_id,
            voice=voice.voice_id,
            language=profile.locale,
            rate=profile.rate,
        )
        clip = self._local.synthesize(request.sanitized_text, voice, profile.rate)
        return self._play_clip(request, clip, SynthesisSource.LOCAL)

    def _pick_voice(self, profile: LanguageProfile) -> LocalVoice:
        """Select a local voice, giving a still-loading catalogue one bounded chance.

        Without a voice for the profile's language the first request waits up
        to ``voice_wait_s`` for the catalogue to change, re-selecting after
        every change. Later requests for that language select straight away
        from whatever is installed by then.
        """
        voices = self._local.voices()
        if not _has_language(voices, profile) and profile.prefix not in self._waited_prefixes:
            self._waited_prefixes.add(profile.prefix)
            self._voices_changed.clear()
            voices = self._local.voices()
            deadline = time.monotonic() + self._voice_wait_s
            while not _has_language(voices, profile):
                remaining = deadline - time.monotonic()
                if remaining <= 0 or not self._voices_changed.wait(timeout=remaining):
                    break
                self._voices_changed.clear()
                voices = self._local.voices()
                log.debug("playback.voices_changed", count=len(voices), language=profile.locale)
        voice = select_local_voice(voices, profile)
        if voice is None:
            raise LocalSynthesisUnsupported(f"no local voice installed for {profile.locale}")
        return voice

    def _play_clip(self, request: PlaybackRequest, clip: AudioClip, source: SynthesisSource) -> PlaybackOutcome:
        with self._lock:
            if request.status == PlaybackStatus.CANCELLED:
                return self._outcome(request)
            sink = self._ensure_sink_locked()
            sink.play(clip)
            request.source = source
            request.status = PlaybackStatus.PLAYING
            self._notify(request)

        sink.wait()
        return self._settle(request, PlaybackStatus.COMPLETED)

    # ------------------------------------------------------------------
    # Request bookkeeping
    # ------------------------------------------------------------------

    def _mark(self, request: PlaybackRequest, status: PlaybackStatus, source: SynthesisSource) -> bool:
        with self._lock:
            if request.status == PlaybackStatus.CANCELLED:
                return False
            request.status = status
            request.source = source
        self._notify(request)
        return True

    def _settle(self, request: PlaybackRequest, status: PlaybackStatus, message: str = "") -> PlaybackOutcome:
        with self._lock:
            if request.status != PlaybackStatus.CANCELLED:
                request.status = status
            if self._active is request:
                self._active = None
        self._notify(request)
        return self._outcome(request, message)

    def _outcome(self, request: PlaybackRequest, message: str = "") -> PlaybackOutcome:
        return PlaybackOutcome(
            status=request.status,
            source=request.source,
            text=request.sanitized_text,
            message=message,
            request_id=request.request_id,
        )

    def _cancel_active_locked(self) -> None:
        request = self._active
        self._active = None
        if request is None or request.terminal:
            return
        request.status = PlaybackStatus.CANCELLED
        log.debug("playback.cancelled", request_id=request.request_id)
        self._teardown_sink_locked()
        self._notify(request)

    def _ensure_sink_locked(self) -> AudioSink:
        if self._sink is None:
            self._sink = self._sink_factory()
        return self._sink

    def _teardown_sink_locked(self) -> None:
        sink = self._sink
        self._sink = None
        if sink is not None:
            sink.stop()

    def _notify(self, request: PlaybackRequest) -> None:
        if self._on_status:
            self._on_status(request)
