from __future__ import annotations

from dataclasses import dataclass, field

import requests

from ..ai.types import CONFIDENCE_LEVELS, ErrorKind, GuessClient, GuessResult, InferenceError


@dataclass
class DrawguessHttpClient(GuessClient):
    """Call a running Drawguess API instead of the Ollama backend directly."""

    base_url: str
    # Slightly above the server's own deadline so its 504 arrives first.
    timeout: float = 130.0
    session: requests.Session = field(default_factory=requests.Session)

    def guess(self, image_base64: str) -> GuessResult:
        try:
            response = self.session.post(
                f"{self.base_url.rstrip('/')}/api/guess",
                json={"image": image_base64},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:  # pragma: no cover - network conditions
            raise InferenceError(
                ErrorKind.TIMEOUT, "Timed out waiting for guess response"
            ) from exc
        except requests.RequestException as exc:
            raise InferenceError(
                ErrorKind.NETWORK_ERROR, f"Failed to call Drawguess API: {exc}"
            ) from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code != 200:
            raise self._error_from_body(response.status_code, data)
        if data is None:
            raise InferenceError(
                ErrorKind.UNKNOWN_ERROR,
                f"Drawguess API returned a non-JSON body (status {response.status_code})",
            )

        if not isinstance(data, dict) or not data.get("guess"):
            raise InferenceError(ErrorKind.UNKNOWN_ERROR, "Drawguess API response had no guess")
        confidence = str(data.get("confidence", "")).lower()
        if confidence not in CONFIDENCE_LEVELS:
            raise InferenceError(
                ErrorKind.UNKNOWN_ERROR, f"Unexpected confidence in response: {confidence!r}"
            )
        return GuessResult(
            guess=str(data["guess"]),
            confidence=confidence,  # type: ignore[arg-type]
            duration_ms=int(data.get("duration_ms") or 0),
        )

    def _error_from_body(self, status_code: int, data: object) -> InferenceError:
        message = f"Drawguess API returned status {status_code}"
        code = None
        if isinstance(data, dict):
            message = str(data.get("error") or message)
            code = data.get("code")
        try:
            kind = ErrorKind(code)
        except ValueError:
            kind = ErrorKind.UNKNOWN_ERROR
        return InferenceError(kind, message)


__all__ = ["DrawguessHttpClient"]
