from __future__ import annotations

from pydantic import BaseModel, Field

from ..ai.types import Confidence


class GuessRequest(BaseModel):
    image: str = Field(..., description="Base64 encoded PNG, optionally a data URI")


class GuessResponse(BaseModel):
    guess: str
    confidence: Confidence
    duration_ms: int = Field(0, ge=0)


class ErrorResponse(BaseModel):
    error: str
    code: str | None = None


__all__ = ["GuessRequest", "GuessResponse", "ErrorResponse"]
