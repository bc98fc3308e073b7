from __future__ import annotations

import pytest

import auto_paste
from auto_paste import ClipboardPasteService


class FakeClipboard:
    def __init__(self, content: str = "previous") -> None:
        self.content = content
        self.copies: list[str] = []

    def paste(self) -> str:
        return self.content

    def copy(self, text: str) -> None:
        self.copies.append(text)
        self.content = text


class FakeKey:
    ctrl = "ctrl"
    cmd = "cmd"


class FakeController:
    events: list[tuple[str, str]] = []
    fail = False

    def press(self, key: str) -> None:
        if FakeController.fail:
            raise RuntimeError("no focused window")
        FakeController.events.append(("press", key))

    def release(self, key: str) -> None:
        FakeController.events.append(("release", key))


@pytest.fixture
def clipboard(monkeypatch: pytest.MonkeyPatch) -> FakeClipboard:
    board = FakeClipboard()
    FakeController.events = []
    FakeController.fail = False
    monkeypatch.setattr(auto_paste, "pyperclip", board)
    monkeypatch.setattr(auto_paste, "Controller", FakeController)
    monkeypatch.setattr(auto_paste, "Key", FakeKey)
    monkeypatch.setattr(auto_paste.sys, "platform", "linux")
    return board


def test_paste_sends_shortcut_and_restores_clipboard(clipboard: FakeClipboard) -> None:
    result = ClipboardPasteService(restore_delay_s=0).paste_text("hello")

    assert result.success is True
    assert result.clipboard_restored is True
    assert clipboard.copies == ["hello", "previous"]
    assert FakeController.events == [("press", "ctrl"), ("press", "v"), ("release", "v"), ("release", "ctrl")]


def test_paste_uses_cmd_on_macos(clipboard: FakeClipboard, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auto_paste.sys, "platform", "darwin")
    ClipboardPasteService(restore_delay_s=0).paste_text("hello")
    assert FakeController.events[0] == ("press", "cmd")


def test_paste_without_restore_keeps_text(clipboard: FakeClipboard) -> None:
    result = ClipboardPasteService(restore_delay_s=0, restore_clipboard=False).paste_text("hello")

    assert result.clipboard_restored is False
    assert clipboard.content == "hello"


def test_paste_failure_leaves_text_on_clipboard(clipboard: FakeClipboard) -> None:
    FakeController.fail = True
    result = ClipboardPasteService(restore_delay_s=0).paste_text("hello")

    assert result.success is False
    assert result.reason.startswith("NO_ACTIVE_TARGET")
    assert clipboard.content == "hello"


def test_paste_returns_failure_when_dependencies_missing(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(auto_paste, "pyperclip", None)
    monkeypatch.setattr(auto_paste, "Controller", None)
    monkeypatch.setattr(auto_paste, "Key", None)

    service = ClipboardPasteService()
    result = service.paste_text("hello")

    assert result.success is False
    assert result.clipboard_restored is False


def test_paste_returns_failure_on_empty_text() -> None:
    service = ClipboardPasteService()
    result = service.paste_text("   ")

    assert result.success is False
    assert result.clipboard_restored is True
