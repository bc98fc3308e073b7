"""Deliver accepted text into the focused window via the clipboard."""

from __future__ import annotations

import sys
import time

import structlog

from errors import NO_ACTIVE_TARGET
from models import PasteResult

log = structlog.get_logger(__name__)

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore


def _paste_modifier():  # noqa: ANN202
    return Key.cmd if sys.platform == "darwin" else Key.ctrl


class ClipboardPasteService:
    def __init__(self, restore_delay_s: float = 0.1, restore_clipboard: bool = True) -> None:
        self._restore_delay_s = restore_delay_s
        self._restore_clipboard = restore_clipboard

    def paste_text(self, text: str) -> PasteResult:
        if not text.strip():
            return PasteResult(success=False, reason="empty text", clipboard_restored=True)
        if pyperclip is None or Controller is None or Key is None:
            return PasteResult(
                success=False,
                reason="clipboard/keyboard dependency missing",
                clipboard_restored=False,
            )

        old_clip: str | None = None
        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(text)
            keyboard = Controller()
            modifier = _paste_modifier()
            keyboard.press(modifier)
            keyboard.press("v")
            keyboard.release("v")
            keyboard.release(modifier)
            time.sleep(self._restore_delay_s)
            if self._restore_clipboard:
                pyperclip.copy(old_clip)
            log.debug("paste.done", chars=len(text))
            return PasteResult(success=True, reason="ok", clipboard_restored=self._restore_clipboard)
        except Exception as exc:
            log.warning("paste.failed", error=str(exc))
            # leave the text on the clipboard so the user can paste by hand
            return PasteResult(
                success=False,
                reason=f"{NO_ACTIVE_TARGET}: {exc}",
                clipboard_restored=False,
            )
