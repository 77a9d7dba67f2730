from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .schemas import ErrorResponse, GuessRequest, GuessResponse
from ..ai import ErrorKind, GuessClient, InferenceError, OllamaGuessClient


logger = logging.getLogger(__name__)

MSG_INVALID_JSON = "Invalid JSON in request body"
MSG_INVALID_IMAGE = "Missing or invalid 'image' field. Expected base64 string."
MSG_EMPTY_IMAGE = "Image field cannot be empty"
MSG_INTERNAL_ERROR = "Internal server error"

ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.MODEL_NOT_FOUND: 503,
    ErrorKind.OLLAMA_SERVER_ERROR: 503,
    ErrorKind.OLLAMA_API_ERROR: 500,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.NETWORK_ERROR: 503,
    ErrorKind.EMPTY_GUESS: 500,
    ErrorKind.UNKNOWN_ERROR: 500,
}


def status_code_for(kind: ErrorKind) -> int:
    return ERROR_STATUS_CODES[kind]


def _error_response(status_code: int, error: str, code: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def create_app(guess_client: GuessClient | None = None) -> FastAPI:
    client = guess_client or OllamaGuessClient()

    app = FastAPI(title="Drawguess API", version="0.1.0")
    app.state.guess_client = client

    logger.info("API server initialised guess_client=%s", client.__class__.__name__)

    @app.exception_handler(RequestValidationError)
    async def _reject_invalid_request(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        if any(error.get("type") == "json_invalid" for error in exc.errors()):
            message = MSG_INVALID_JSON
        else:
            message = MSG_INVALID_IMAGE
        logger.info("Rejected guess request path=%s reason=%s", request.url.path, message)
        return _error_response(400, message)

    @app.get("/health", response_model=dict[str, str])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(
        "/api/guess",
        response_model=GuessResponse,
        responses={
            400: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
            503: {"model": ErrorResponse},
            504: {"model": ErrorResponse},
        },
    )
    def guess_drawing(request: GuessRequest) -> GuessResponse | JSONResponse:
        if not request.image:
            return _error_response(400, MSG_INVALID_IMAGE)
        if not request.image.strip():
            return _error_response(400, MSG_EMPTY_IMAGE)

        logger.info("Guess requested payload_chars=%d", len(request.image))
        try:
            result = client.guess(request.image)
        except InferenceError as exc:
            status_code = status_code_for(exc.kind)
            logger.warning(
                "Guess failed kind=%s status=%d message=%s",
                exc.kind.value,
                status_code,
                exc.message,
            )
            return _error_response(status_code, exc.message, exc.kind.value)
        except Exception:
            logger.exception("Unexpected error in /api/guess")
            return _error_response(500, MSG_INTERNAL_ERROR)

        return GuessResponse(
            guess=result.guess,
            confidence=result.confidence,
            duration_ms=result.duration_ms,
        )

    return app


__all__ = ["ERROR_STATUS_CODES", "create_app", "status_code_for"]
