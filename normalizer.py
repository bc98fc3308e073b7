"""Transcript cleanup for recognition artifacts.

Recognizers tend to repeat a word when an interim hypothesis is revised
("I want want pizza") and to stretch held vowels ("myyyy"). ``normalize``
removes both without touching anything else, so it is safe to run on every
interim update as well as on the final text.
"""

from __future__ import annotations

import re

_STRETCH = re.compile(r"(.)\1{2,}")
_REPEAT = re.compile(r"(.)\1+")


def collapse_token(token: str, aggressive: bool = False) -> str:
    """Shorten character runs: 3+ down to 2, or 2+ down to 1 when aggressive."""
    if aggressive:
        return _REPEAT.sub(r"\1", token)
    return _STRETCH.sub(r"\1\1", token)


def normalize(raw_text: str, aggressive_collapse: bool = False) -> str:
    kept: list[str] = []
    previous = None
    for token in raw_text.split():
        cleaned = collapse_token(token, aggressive_collapse)
        # compare collapsed forms so a second pass has nothing left to drop
        key = cleaned.casefold()
        if key == previous:
            continue
        kept.append(cleaned)
        previous = key
    return " ".join(kept).strip()


class TranscriptNormalizer:
    """``normalize`` bound to one collapse policy."""

    def __init__(self, aggressive_collapse: bool = False) -> None:
        self.aggressive_collapse = aggressive_collapse

    def __call__(self, raw_text: str) -> str:
        return normalize(raw_text, self.aggressive_collapse)
