from __future__ import annotations

import re

from .types import (
    CONFIDENCE_LEVELS,
    DEFAULT_CONFIDENCE,
    Confidence,
    ErrorKind,
    GuessResult,
    InferenceError,
)

UNCLEAR_GUESS = "unclear"

# Applied one after another, so "Answer: it is a cat" reduces to "cat".
# The article is only dropped together with "it is"; a bare "a red balloon"
# stays as written.
_GUESS_PREFIXES = (
    re.compile(r"^guess\s*[:\-]\s*", re.IGNORECASE),
    re.compile(r"^answer\s*[:\-]\s*", re.IGNORECASE),
    re.compile(r"^it\s+is\s+(?:(?:a|an|the)\s+)?", re.IGNORECASE),
)


def candidate_lines(raw_text: str) -> list[str]:
    """Trimmed, non-blank lines of a model reply in their original order."""
    return [line.strip() for line in raw_text.split("\n") if line.strip()]


def _mentions_confidence(line: str) -> bool:
    lower = line.lower()
    return any(level in lower for level in CONFIDENCE_LEVELS)


def _strip_prefixes(line: str) -> str:
    cleaned = line
    for pattern in _GUESS_PREFIXES:
        cleaned = pattern.sub("", cleaned, count=1)
    return cleaned.strip()


def extract_guess(lines: list[str]) -> str:
    for line in lines:
        if _mentions_confidence(line):
            continue
        cleaned = _strip_prefixes(line)
        if cleaned:
            return cleaned
    return ""


def extract_confidence(lines: list[str]) -> Confidence | None:
    for line in lines:
        lower = line.lower()
        for level in CONFIDENCE_LEVELS:
            if level in lower:
                return level
    return None


def parse_guess(raw_text: str, duration_ms: int = 0) -> GuessResult:
    """Turn a free-form model reply into a ``GuessResult``.

    An empty reply means the model had nothing to say and yields ``unclear``
    with low confidence. A non-empty reply without any usable guess line raises
    ``InferenceError`` with ``ErrorKind.EMPTY_GUESS``. A missing confidence
    keyword degrades to ``medium``.
    """
    if not raw_text or not raw_text.strip():
        return GuessResult(guess=UNCLEAR_GUESS, confidence="low", duration_ms=duration_ms)

    lines = candidate_lines(raw_text)
    guess = extract_guess(lines)
    confidence = extract_confidence(lines) or DEFAULT_CONFIDENCE

    if not guess:
        raise InferenceError(ErrorKind.EMPTY_GUESS, "Ollama returned empty guess")

    return GuessResult(guess=guess, confidence=confidence, duration_ms=duration_ms)


__all__ = [
    "UNCLEAR_GUESS",
    "candidate_lines",
    "extract_confidence",
    "extract_guess",
    "parse_guess",
]
