"""Shared error codes, user-facing messages and synthesis exceptions."""

from __future__ import annotations

from models import CaptureResultKind, ProviderErrorCode

TIMEOUT = "TIMEOUT"
NO_SPEECH_DETECTED = "NO_SPEECH_DETECTED"
PERMISSION_DENIED = "PERMISSION_DENIED"
DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
OTHER_CAPTURE_ERROR = "OTHER_CAPTURE_ERROR"
REMOTE_SYNTHESIS_UNAVAILABLE = "REMOTE_SYNTHESIS_UNAVAILABLE"
LOCAL_SYNTHESIS_UNSUPPORTED = "LOCAL_SYNTHESIS_UNSUPPORTED"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"

ERROR_MESSAGES = {
    TIMEOUT: "Listening timed out. Speak clearly or type instead.",
    NO_SPEECH_DETECTED: "No speech detected. Try again or type your answer.",
    PERMISSION_DENIED: "Microphone access denied. Please enable it in system settings.",
    DEVICE_UNAVAILABLE: "Microphone not available. Please check the input device.",
    OTHER_CAPTURE_ERROR: "Voice input failed. Try again or type.",
    REMOTE_SYNTHESIS_UNAVAILABLE: "Remote voice unavailable, using the local voice.",
    LOCAL_SYNTHESIS_UNSUPPORTED: "No local voice is installed.",
    NO_ACTIVE_TARGET: "No active input target, result kept in clipboard.",
}

FALLBACK_ADVISORY = "Voice not working? Type your answer instead."

RESULT_CODES = {
    CaptureResultKind.TIMEOUT: TIMEOUT,
    CaptureResultKind.NO_SPEECH: NO_SPEECH_DETECTED,
    CaptureResultKind.PERMISSION_DENIED: PERMISSION_DENIED,
    CaptureResultKind.DEVICE_UNAVAILABLE: DEVICE_UNAVAILABLE,
    CaptureResultKind.OTHER_ERROR: OTHER_CAPTURE_ERROR,
}

TERMINAL_KINDS = frozenset({CaptureResultKind.PERMISSION_DENIED, CaptureResultKind.DEVICE_UNAVAILABLE})


def result_kind_for(provider_code: str) -> CaptureResultKind:
    """Map a capture provider error code to a capture result kind."""
    mapping = {
        ProviderErrorCode.NO_SPEECH.value: CaptureResultKind.NO_SPEECH,
        ProviderErrorCode.NOT_ALLOWED.value: CaptureResultKind.PERMISSION_DENIED,
        ProviderErrorCode.AUDIO_CAPTURE.value: CaptureResultKind.DEVICE_UNAVAILABLE,
        ProviderErrorCode.ABORTED.value: CaptureResultKind.CANCELLED,
    }
    return mapping.get(provider_code, CaptureResultKind.OTHER_ERROR)


class VoiceError(Exception):
    code = OTHER_CAPTURE_ERROR


class CaptureDeviceError(VoiceError):
    """Raised by recorders when the input device cannot be opened."""

    def __init__(self, message: str, provider_code: str = ProviderErrorCode.AUDIO_CAPTURE.value) -> None:
        super().__init__(message)
        self.provider_code = provider_code


class RemoteSynthesisUnavailable(VoiceError):
    code = REMOTE_SYNTHESIS_UNAVAILABLE

    def __init__(self, message: str, retryable: bool = False, fallback: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.fallback = fallback


class LocalSynthesisUnsupported(VoiceError):
    code = LOCAL_SYNTHESIS_UNSUPPORTED


class PlaybackDeviceError(VoiceError):
    """The output device refused to play a clip."""
