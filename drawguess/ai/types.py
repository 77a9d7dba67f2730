from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Protocol

Confidence = Literal["high", "medium", "low"]

# Checked in this order, both when skipping confidence lines and when
# resolving the confidence level.
CONFIDENCE_LEVELS: tuple[Confidence, ...] = ("high", "medium", "low")
DEFAULT_CONFIDENCE: Confidence = "medium"


class ErrorKind(str, Enum):
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    OLLAMA_SERVER_ERROR = "OLLAMA_SERVER_ERROR"
    OLLAMA_API_ERROR = "OLLAMA_API_ERROR"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    EMPTY_GUESS = "EMPTY_GUESS"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class InferenceError(Exception):
    """A classified guess failure: one ``ErrorKind`` plus a readable message."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"InferenceError(kind={self.kind.value!r}, message={self.message!r})"


@dataclass(frozen=True)
class GuessResult:
    guess: str
    confidence: Confidence
    duration_ms: int = 0


class GuessClient(Protocol):
    def guess(self, image_base64: str) -> GuessResult: ...


__all__ = [
    "CONFIDENCE_LEVELS",
    "Confidence",
    "DEFAULT_CONFIDENCE",
    "ErrorKind",
    "GuessClient",
    "GuessResult",
    "InferenceError",
]
