"""Application entrypoint."""

from __future__ import annotations

import sys
import threading

import structlog

from answer_matcher import PracticeRound, feedback_for
from auto_paste import ClipboardPasteService
from capture_controller import CaptureController
from config import JsonConfigStore, VoiceSettings
from confirmation import ConfirmationGate
from errors import ERROR_MESSAGES, NO_ACTIVE_TARGET
from fallback_policy import FailurePolicy
from hotkey import PushToTalkHotkey
from interfaces import RemoteSynthesizer
from languages import LANGUAGE_PROFILES
from local_tts import PiperLocalSynthesizer
from logging_setup import setup_logging
from models import CaptureResult, CaptureState
from overlay import OverlayWindow
from playback import PlaybackOrchestrator
from recognizer import DashscopeCaptureProvider
from remote_tts import DashscopeSynthesizer, HttpRelaySynthesizer

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

log = structlog.get_logger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"
ICON_LISTENING = "#FF4444"
ICON_ERROR = "#FF8800"
ICON_FALLBACK = "#4A90E2"


class UIBridge(QObject):
    partial_signal = Signal(str)
    error_signal = Signal(str)
    advisory_signal = Signal(str)
    state_signal = Signal(str, str)
    confirm_signal = Signal(str)
    fallback_signal = Signal(bool)


def build_remote(settings: VoiceSettings) -> RemoteSynthesizer:
    if settings.relay_url:
        return HttpRelaySynthesizer(settings.relay_url, token=settings.relay_token)
    return DashscopeSynthesizer(api_key=settings.api_key)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        settings = self.config_store.load_settings()
        self.language = settings.language

        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.partial_signal.connect(self.overlay.set_text)
        self.ui.error_signal.connect(self.overlay.show_error)
        self.ui.advisory_signal.connect(self.overlay.show_advisory)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.confirm_signal.connect(self._on_confirm_ui)
        self.ui.fallback_signal.connect(self._on_fallback_ui)

        self.paste_service = ClipboardPasteService()
        self.practice = PracticeRound(on_graded=self._on_graded)
        self.policy = FailurePolicy(
            fallback_threshold=settings.fallback_threshold,
            on_advisory=self.ui.advisory_signal.emit,
            on_fallback_change=self.ui.fallback_signal.emit,
        )
        self.gate = (
            ConfirmationGate(on_accept=self._handle_text, on_present=self.ui.confirm_signal.emit)
            if settings.confirm_results
            else None
        )
        self.controller = CaptureController(
            provider=DashscopeCaptureProvider(api_key=settings.api_key),
            config=settings.capture_config,
            policy=self.policy,
            confirmation=self.gate,
            on_state_change=self._on_state_change,
            on_partial=self.ui.partial_signal.emit,
            on_result=self._on_result,
            on_error=self._on_error,
        )

        self.local_tts = PiperLocalSynthesizer(settings.piper_voice_dir)
        self.local_tts.load_async()
        self.playback = PlaybackOrchestrator(local=self.local_tts, remote=build_remote(settings))
        self.hotkey = PushToTalkHotkey(hotkey_name=settings.hotkey)

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("Voice Core — Ready")
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        for label, handler in (
            ("Set API Key", self._set_api_key),
            ("Set Language", self._set_language),
            ("Set Hotkey", self._set_hotkey),
        ):
            action = QAction(label, menu)
            action.triggered.connect(handler)
            menu.addAction(action)

        menu.addSeparator()
        self.type_action = QAction("Type Instead…", menu)
        self.type_action.triggered.connect(self._type_instead)
        menu.addAction(self.type_action)

        retry_action = QAction("Try Voice Again", menu)
        retry_action.triggered.connect(self._retry_voice)
        menu.addAction(retry_action)

        menu.addSeparator()
        practice_action = QAction("Practice a Phrase…", menu)
        practice_action.triggered.connect(self._begin_practice)
        menu.addAction(practice_action)

        end_practice_action = QAction("End Practice", menu)
        end_practice_action.triggered.connect(self.practice.end)
        menu.addAction(end_practice_action)

        menu.addSeparator()
        read_action = QAction("Read Clipboard Aloud", menu)
        read_action.triggered.connect(self._read_clipboard)
        menu.addAction(read_action)

        stop_action = QAction("Stop Speaking", menu)
        stop_action.triggered.connect(self.playback.stop)
        menu.addAction(stop_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        QMessageBox.information(None, "Saved", "API Key saved. Restart app to apply.")

    def _set_language(self) -> None:
        names = list(LANGUAGE_PROFILES)
        current = names.index(self.language) if self.language in names else 0
        value, ok = QInputDialog.getItem(None, "Language", "Speech language", names, current, False)
        if not ok:
            return
        self.config_store.set_language(value)
        self.language = value
        if not self.controller.configure(self.config_store.load_settings().capture_config):
            QMessageBox.information(None, "Saved", "Language saved. It applies to the next capture.")

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(None, "Hotkey", "Use pynput key format, e.g. Key.alt_l")
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: CaptureState, to_state: CaptureState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(ERROR_MESSAGES.get(code, message))

    def _on_result(self, result: CaptureResult) -> None:
        if result.ok and self.gate is None:
            self._handle_text(result.text)

    def _handle_text(self, text: str) -> None:
        # answers are graded, not pasted, while a practice phrase is set
        if self.practice.grade(text) is None:
            self._deliver(text)

    def _on_graded(self, correct: bool, expected: str) -> None:
        self.ui.advisory_signal.emit(feedback_for(correct, expected))
        if not correct:
            self.playback.speak(expected, self.language)

    def _deliver(self, text: str) -> None:
        result = self.paste_service.paste_text(text)
        if not result.success:
            self.ui.error_signal.emit(ERROR_MESSAGES[NO_ACTIVE_TARGET])

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == CaptureState.LISTENING.value:
            self.tray.setIcon(_create_icon(ICON_LISTENING))
            self.tray.setToolTip("Voice Core — Listening...")
            self.overlay.set_text("🎙️ Listening...")
        elif to_state == CaptureState.FINALIZING.value:
            self.tray.setToolTip("Voice Core — Processing...")
        elif to_state == CaptureState.ERROR.value:
            self.tray.setIcon(_create_icon(ICON_ERROR))
        elif to_state == CaptureState.IDLE.value:
            color = ICON_FALLBACK if self.policy.fallback_active else ICON_IDLE
            self.tray.setIcon(_create_icon(color))
            self.tray.setToolTip("Voice Core — Ready")
            self.overlay.hide_with_delay(400)

    def _on_confirm_ui(self, text: str) -> None:
        if self.gate is None:
            return
        box = QMessageBox()
        box.setWindowTitle("Is this correct?")
        box.setText(text)
        accept = box.addButton("Use It", QMessageBox.AcceptRole)
        retry = box.addButton("Retry", QMessageBox.RejectRole)
        box.setDefaultButton(accept)
        box.setEscapeButton(retry)
        box.exec()
        if box.clickedButton() is accept:
            self.gate.accept()
        else:
            self.playback.stop()
            self.gate.discard()

    def _on_fallback_ui(self, active: bool) -> None:
        self.tray.setIcon(_create_icon(ICON_FALLBACK if active else ICON_IDLE))
        self.type_action.setText("Type Instead… (recommended)" if active else "Type Instead…")

    def _type_instead(self) -> None:
        value, ok = QInputDialog.getText(None, "Type Instead", "Your text")
        if ok and value.strip():
            self._handle_text(value.strip())

    def _begin_practice(self) -> None:
        value, ok = QInputDialog.getText(None, "Practice", "Phrase to say")
        if ok and value.strip():
            self.practice.begin(value)
            self.playback.speak(value, self.language)

    def _retry_voice(self) -> None:
        self.controller.retry()
        self.overlay.set_text("🎙️ Voice input re-enabled")
        self.overlay.hide_with_delay(1200)

    def _read_clipboard(self) -> None:
        text = QApplication.clipboard().text()
        if text.strip():
            self.playback.speak(text, self.language)

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_hotkey_press(self) -> None:
        # never listen while speaking
        self.playback.stop()
        self.controller.start_capture()

    def _on_hotkey_release(self) -> None:
        # stop_capture waits briefly for trailing finals; keep it off the listener thread
        threading.Thread(target=self.controller.stop_capture, daemon=True).start()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(on_press=self._on_hotkey_press, on_release=self._on_hotkey_release)
        except Exception as exc:
            log.warning("app.hotkey_disabled", error=str(exc))
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.cancel_capture("app quit")
        self.playback.stop()
        self.app.quit()


def main() -> int:
    setup_logging()
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
