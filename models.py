"""Core data models for the voice interaction core."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class CaptureState(str, Enum):
    IDLE = "IDLE"
    STARTING = "STARTING"
    LISTENING = "LISTENING"
    FINALIZING = "FINALIZING"
    COMPLETED = "COMPLETED"
    TIMED_OUT = "TIMED_OUT"
    ERROR = "ERROR"


class CaptureEventKind(str, Enum):
    STARTED = "started"
    CHUNK = "chunk"
    SPEECH_ENDED = "speech_ended"
    ENDED = "ended"
    ERROR = "error"


class ProviderErrorCode(str, Enum):
    NO_SPEECH = "no-speech"
    AUDIO_CAPTURE = "audio-capture"
    NOT_ALLOWED = "not-allowed"
    ABORTED = "aborted"
    OTHER = "other"


class CaptureResultKind(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    NO_SPEECH = "no_speech"
    PERMISSION_DENIED = "permission_denied"
    DEVICE_UNAVAILABLE = "device_unavailable"
    OTHER_ERROR = "other_error"
    CANCELLED = "cancelled"


class PlaybackStatus(str, Enum):
    PENDING = "pending"
    SYNTHESIZING = "synthesizing"
    PLAYING = "playing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    SKIPPED = "skipped"


class SynthesisSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


TERMINAL_PLAYBACK = frozenset(
    {PlaybackStatus.COMPLETED, PlaybackStatus.CANCELLED, PlaybackStatus.FAILED, PlaybackStatus.SKIPPED}
)


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class AudioClip:
    samples: Any
    sample_rate: int

    @property
    def duration_s(self) -> float:
        if not self.sample_rate:
            return 0.0
        return len(self.samples) / float(self.sample_rate)


@dataclass
class CaptureEvent:
    kind: str
    text: str = ""
    is_final: bool = False
    confidence: Optional[float] = None
    code: str = ""
    message: str = ""


@dataclass
class TranscriptChunk:
    text: str
    is_final: bool
    confidence: Optional[float] = None


@dataclass
class CaptureConfig:
    continuous: bool = False
    interim_results: bool = True
    silence_ms: int = 3000
    hard_ceiling_ms: int = 8000
    start_timeout_ms: int = 5000
    aggressive_collapse: bool = False
    language: str = "en-US"


@dataclass
class CaptureSession:
    """State of one capture attempt.

    ``normalized_text`` is only ever assigned from a full recomputation over
    ``raw_chunks``; it is never appended to.
    """

    session_id: int
    state: CaptureState = CaptureState.IDLE
    raw_chunks: list[TranscriptChunk] = field(default_factory=list)
    normalized_text: str = ""
    started_at: float = field(default_factory=time.monotonic)
    last_activity_at: float = field(default_factory=time.monotonic)
    processed: bool = False
    manual_stop: bool = False

    def segments(self) -> list[str]:
        """Effective transcript segments in arrival order.

        Interim chunks are revisions of the segment currently being spoken, so
        each one replaces the previous interim. A final chunk replaces the
        pending interim and closes the segment.
        """
        committed: list[str] = []
        pending: Optional[str] = None
        for chunk in self.raw_chunks:
            if chunk.is_final:
                committed.append(chunk.text)
                pending = None
            else:
                pending = chunk.text
        if pending is not None:
            committed.append(pending)
        return committed

    def has_final(self) -> bool:
        return any(chunk.is_final for chunk in self.raw_chunks)


@dataclass
class CaptureResult:
    kind: CaptureResultKind
    text: str = ""
    code: str = ""
    message: str = ""
    session_id: int = 0

    @property
    def ok(self) -> bool:
        return self.kind == CaptureResultKind.SUCCESS


@dataclass
class FailureCounter:
    consecutive_failures: int = 0
    fallback_active: bool = False


@dataclass
class PendingConfirmation:
    text: str


@dataclass
class LanguageProfile:
    name: str
    locale: str
    rate: float

    @property
    def prefix(self) -> str:
        return self.locale.replace("_", "-").split("-")[0].lower()


@dataclass
class LocalVoice:
    voice_id: str
    name: str
    language: str
    quality: str = "medium"
    model_path: str = ""
    sample_rate: int = 22050

    @property
    def prefix(self) -> str:
        return self.language.replace("_", "-").split("-")[0].lower()


@dataclass
class PlaybackRequest:
    request_id: int
    sanitized_text: str
    language_tag: str
    source: Optional[SynthesisSource] = None
    status: PlaybackStatus = PlaybackStatus.PENDING

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_PLAYBACK


@dataclass
class PlaybackOutcome:
    status: PlaybackStatus
    source: Optional[SynthesisSource] = None
    text: str = ""
    message: str = ""
    request_id: int = 0


@dataclass
class PasteResult:
    success: bool
    reason: str
    clipboard_restored: bool
