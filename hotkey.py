"""Push-to-talk hotkey based on pynput."""

from __future__ import annotations

import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore


class PushToTalkHotkey:
    """Calls ``on_press`` once per hold and ``on_release`` when let go.

    Auto-repeat delivers many presses while the key is held; only the first
    one counts.
    """

    def __init__(self, hotkey_name: str = "Key.alt_l") -> None:
        self.hotkey_name = hotkey_name
        self._listener: Optional[object] = None
        self._held = False
        self._lock = threading.Lock()

    def handle_press(self, key: object, on_press: Callable[[], None]) -> None:
        if str(key) != self.hotkey_name:
            return
        with self._lock:
            if self._held:
                return
            self._held = True
        on_press()

    def handle_release(self, key: object, on_release: Callable[[], None]) -> None:
        if str(key) != self.hotkey_name:
            return
        with self._lock:
            if not self._held:
                return
            self._held = False
        on_release()

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._listener = keyboard.Listener(
            on_press=lambda key: self.handle_press(key, on_press),
            on_release=lambda key: self.handle_release(key, on_release),
        )
        self._listener.start()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
