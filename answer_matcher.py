"""Lenient grading of a spoken answer against an expected phrase."""

from __future__ import annotations

import threading
from typing import Callable, Optional

import structlog

log = structlog.get_logger(__name__)


def matches_expected(spoken: str, expected: str) -> bool:
    """True when either phrase contains the other, or any spoken word
    appears inside the expected phrase.

    A single overlapping word already counts as correct.
    """
    heard = spoken.lower().strip()
    target = expected.lower().strip()
    if not heard or not target:
        return False
    if heard in target or target in heard:
        return True
    return any(word in target for word in heard.split())


def feedback_for(correct: bool, expected: str) -> str:
    if correct:
        return "Excellent!"
    return f"Not quite. The correct answer is: {expected}"


class PracticeRound:
    """Target phrase that accepted answers are graded against while set."""

    def __init__(self, on_graded: Optional[Callable[[bool, str], None]] = None) -> None:
        self._on_graded = on_graded
        self._lock = threading.Lock()
        self._expected = ""

    @property
    def expected(self) -> str:
        return self._expected

    @property
    def active(self) -> bool:
        return bool(self._expected)

    def begin(self, expected: str) -> None:
        with self._lock:
            self._expected = expected.strip()
        log.info("practice.begin", chars=len(self._expected))

    def end(self) -> None:
        with self._lock:
            self._expected = ""

    def grade(self, answer: str) -> Optional[bool]:
        """Grade ``answer``; None when no phrase is set."""
        with self._lock:
            expected = self._expected
        if not expected:
            return None
        correct = matches_expected(answer, expected)
        log.info("practice.graded", correct=correct, chars=len(answer))
        if self._on_graded:
            self._on_graded(correct, expected)
        return correct
