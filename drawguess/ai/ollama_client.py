from __future__ import annotations

import logging
import math
import re
import socket
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable

import requests
from requests.adapters import HTTPAdapter
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from .guess_parser import parse_guess
from .types import ErrorKind, GuessClient, GuessResult, InferenceError

logger = logging.getLogger(__name__)

_DATA_URI_PREFIX = re.compile(r"^data:[^;]+;base64,")
ABORT_JOIN_SECONDS = 2.0

GUESS_PROMPT = (
    "You are an expert at identifying drawings and sketches. Look at the image "
    "and guess what object or thing has been drawn.\n\n"
    "Respond with EXACTLY two lines:\n"
    '1. First line: The single word or short phrase of what is drawn (e.g., "cat", "house", "tree")\n'
    '2. Second line: Your confidence level as one word - either "high", "medium", or "low"\n\n'
    "Do not include any other text, explanation, or punctuation. Just the guess and confidence level."
)


def strip_data_uri_prefix(image_base64: str) -> str:
    """Drop a ``data:<mime>;base64,`` header, leaving the bare base64 payload."""
    return _DATA_URI_PREFIX.sub("", image_base64, count=1)


def extract_response_content(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    message = data.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
    fallback = data.get("response")
    if isinstance(fallback, str) and fallback.strip():
        return fallback.strip()
    return ""


def duration_from_nanoseconds(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    # Halves round up, never to even.
    return max(0, math.floor(value / 1_000_000 + 0.5))


class AbortableAdapter(HTTPAdapter):
    """Transport adapter that can sever the connections it has opened.

    ``Session.close`` only drops idle pooled connections; the one checked out
    by a running request keeps blocking in ``recv``. ``abort`` shuts those
    sockets down so the blocked read returns and the request fails at once.
    """

    def __init__(self) -> None:
        self._connections: list[Any] = []
        self._connections_lock = threading.Lock()
        self._aborted = False
        super().__init__(max_retries=0)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        adapter = self

        class _TrackedHTTPPool(HTTPConnectionPool):
            def _new_conn(self):
                return adapter._track(super()._new_conn())

        class _TrackedHTTPSPool(HTTPSConnectionPool):
            def _new_conn(self):
                return adapter._track(super()._new_conn())

        self.poolmanager.pool_classes_by_scheme = {
            "http": _TrackedHTTPPool,
            "https": _TrackedHTTPSPool,
        }

    def send(self, request, *args: Any, **kwargs: Any) -> requests.Response:
        if self._aborted:
            raise requests.ConnectionError("Request aborted before it was sent")
        return super().send(request, *args, **kwargs)

    def abort(self) -> None:
        with self._connections_lock:
            self._aborted = True
            connections = list(self._connections)
        for conn in connections:
            sock = getattr(conn, "sock", None)
            if sock is not None:
                try:
                    sock.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
            conn.close()

    def _track(self, conn: Any) -> Any:
        with self._connections_lock:
            self._connections.append(conn)
        return conn


class PendingGuess:
    """A single in-flight guess request guarded by a cancelable deadline.

    The request runs on its own worker thread with its own HTTP session. A
    timer fires ``cancel`` once the client timeout elapses; callers may also
    cancel earlier. Either way ``result`` raises ``ErrorKind.TIMEOUT``.
    """

    def __init__(
        self,
        client: "OllamaGuessClient",
        session: requests.Session,
        url: str,
        payload: dict[str, Any],
        adapter: AbortableAdapter | None = None,
    ) -> None:
        self._client = client
        self._session = session
        self._adapter = adapter
        self._url = url
        self._payload = payload
        self._future: Future[requests.Response] = Future()
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._abort_message: str | None = None
        self._future.add_done_callback(lambda _: self._done.set())
        self._deadline = threading.Timer(client.timeout, self._expire)
        self._deadline.daemon = True
        self._worker = threading.Thread(
            target=self._run, name="ollama-guess", daemon=True
        )

    def start(self) -> "PendingGuess":
        self._deadline.start()
        self._worker.start()
        return self

    def cancel(self) -> bool:
        return self._abort("Ollama API request was cancelled")

    def cancelled(self) -> bool:
        with self._lock:
            return self._abort_message is not None

    def done(self) -> bool:
        return self._done.is_set()

    def result(self) -> GuessResult:
        self._done.wait()
        self._deadline.cancel()
        with self._lock:
            abort_message = self._abort_message
        if abort_message is not None:
            logger.warning("Guess request aborted model=%s: %s", self._client.model, abort_message)
            # The severed socket unblocks the worker promptly.
            self._worker.join(ABORT_JOIN_SECONDS)
            raise InferenceError(ErrorKind.TIMEOUT, abort_message)

        try:
            response = self._future.result()
            return self._client._handle_response(response)
        except InferenceError as exc:
            logger.warning("Guess request failed kind=%s: %s", exc.kind.value, exc.message)
            raise
        except requests.Timeout as exc:
            logger.warning("Guess request timed out at socket level: %s", exc)
            raise InferenceError(ErrorKind.TIMEOUT, self._client._timeout_message()) from exc
        except requests.RequestException as exc:
            logger.warning("Guess request could not reach backend: %s", exc)
            raise InferenceError(
                ErrorKind.NETWORK_ERROR, f"Failed to connect to Ollama API: {exc}"
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected failure while requesting a guess")
            raise InferenceError(ErrorKind.UNKNOWN_ERROR, f"Unexpected error: {exc}") from exc

    def _run(self) -> None:
        if not self._future.set_running_or_notify_cancel():
            return
        try:
            try:
                response = self._session.post(
                    self._url,
                    json=self._payload,
                    headers={"Content-Type": "application/json"},
                    timeout=self._client.timeout,
                )
            finally:
                self._session.close()
        except BaseException as exc:
            self._future.set_exception(exc)
        else:
            self._future.set_result(response)

    def _expire(self) -> None:
        self._abort(self._client._timeout_message())

    def _abort(self, message: str) -> bool:
        with self._lock:
            if self._future.done() or self._abort_message is not None:
                return False
            self._abort_message = message
        self._deadline.cancel()
        if self._adapter is not None:
            self._adapter.abort()
        self._session.close()
        self._done.set()
        return True


@dataclass
class OllamaGuessClient(GuessClient):
    """Ask a local Ollama vision model what a drawing shows."""

    base_url: str = "http://localhost:11434"
    model: str = "qwen3-vl"
    timeout: float = 120.0
    temperature: float = 0.3
    max_output_tokens: int = 200
    keep_alive: str = "15m"
    session_factory: Callable[[], requests.Session] = requests.Session

    def guess(self, image_base64: str) -> GuessResult:
        return self.submit(image_base64).result()

    def submit(self, image_base64: str) -> PendingGuess:
        try:
            payload = self._build_payload(image_base64)
            session = self.session_factory()
            adapter = AbortableAdapter()
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        except Exception as exc:
            raise InferenceError(ErrorKind.UNKNOWN_ERROR, f"Unexpected error: {exc}") from exc
        logger.info(
            "Requesting guess model=%s image_chars=%d",
            self.model,
            len(payload["messages"][0]["images"][0]),
        )
        return PendingGuess(self, session, self._chat_url(), payload, adapter).start()

    def _chat_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/chat"

    def _timeout_message(self) -> str:
        return f"Ollama API request timed out after {self.timeout:g} seconds"

    def _build_payload(self, image_base64: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": GUESS_PROMPT,
                    "images": [strip_data_uri_prefix(image_base64)],
                }
            ],
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_output_tokens,
            },
            "keep_alive": self.keep_alive,
        }

    def _handle_response(self, response: requests.Response) -> GuessResult:
        if not 200 <= response.status_code < 300:
            raise self._status_error(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise InferenceError(
                ErrorKind.UNKNOWN_ERROR,
                f"Unexpected error: Ollama API returned a non-JSON body: {exc}",
            ) from exc
        raw_content = extract_response_content(data)
        duration_ms = duration_from_nanoseconds(
            data.get("total_duration") if isinstance(data, dict) else None
        )
        result = parse_guess(raw_content, duration_ms)
        logger.info(
            "Guess complete model=%s guess=%r confidence=%s duration_ms=%d",
            self.model,
            result.guess,
            result.confidence,
            result.duration_ms,
        )
        return result

    def _status_error(self, response: requests.Response) -> InferenceError:
        status = response.status_code
        message = f"Ollama API returned status {status}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            message = str(body["error"])

        if status == 404:
            return InferenceError(
                ErrorKind.MODEL_NOT_FOUND,
                f"Ollama model '{self.model}' not found: {message}",
            )
        if status >= 500:
            return InferenceError(ErrorKind.OLLAMA_SERVER_ERROR, f"Ollama server error: {message}")
        return InferenceError(ErrorKind.OLLAMA_API_ERROR, f"Ollama API error: {message}")


__all__ = [
    "AbortableAdapter",
    "GUESS_PROMPT",
    "OllamaGuessClient",
    "PendingGuess",
    "duration_from_nanoseconds",
    "extract_response_content",
    "strip_data_uri_prefix",
]
