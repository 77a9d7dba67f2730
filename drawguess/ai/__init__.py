from __future__ import annotations

from .types import ErrorKind, GuessClient, GuessResult, InferenceError

__all__ = [
    "ErrorKind",
    "GuessClient",
    "GuessResult",
    "InferenceError",
    "OllamaGuessClient",
    "parse_guess",
]


def __getattr__(name: str):
    if name == "OllamaGuessClient":
        from .ollama_client import OllamaGuessClient

        return OllamaGuessClient
    if name == "parse_guess":
        from .guess_parser import parse_guess

        return parse_guess
    raise AttributeError(f"module 'drawguess.ai' has no attribute {name!r}")
