"""Pydantic request/response models for the HTTP proxy.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and the generated OpenAPI docs. The field names
follow the proxy's published JSON (camelCase where existing clients expect
it, e.g. sessionId).

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Error responses always use ErrorResponse ({error, message})
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from otter_proxy.config import MAX_CREDENTIAL_LENGTH


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Otter credentials submitted to POST /api/auth/login."""

    username: str = Field(
        min_length=1,
        max_length=MAX_CREDENTIAL_LENGTH,
        description="Otter.ai account e-mail.",
    )
    password: str = Field(
        min_length=1,
        max_length=MAX_CREDENTIAL_LENGTH,
        description="Otter.ai account password.",
    )


class LogoutRequest(BaseModel):
    """Optional body for POST /api/auth/logout."""

    sessionId: Optional[str] = Field(
        default=None,
        description="Session token, when not sent in the session-id header.",
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    success: bool = Field(description="Always true on a successful login.")
    sessionId: str = Field(description="Opaque token to send as the session-id header.")
    user: Dict[str, Any] = Field(description="Otter login payload, including userid.")
    expiresIn: int = Field(description="Idle session lifetime in milliseconds.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "success": True,
                "sessionId": "sess_3f0c8e0b9d6a4b51a0e7c2d4f81b9a60",
                "user": {"userid": "1234567", "email": "jane@example.com"},
                "expiresIn": 86400000,
            }
        ]
    }}


class SpeechSummaryModel(BaseModel):
    id: Optional[str] = Field(default=None, description="Otter speech id (otid).")
    title: str = Field(description="Speech title, 'Untitled' when missing.")
    created_at: Optional[Any] = Field(default=None, description="Creation timestamp as sent by Otter.")
    duration: float = Field(description="Duration in seconds.")
    source: str = Field(description="'owned' or 'shared'.")


class SpeechIdsResponse(BaseModel):
    total_count: int = Field(description="Number of speeches across all sources.")
    speech_ids: List[SpeechSummaryModel] = Field(
        description="Speeches, owned before shared."
    )


class TranscriptResponse(BaseModel):
    speech_id: str = Field(description="Requested Otter speech id.")
    title: str = Field(description="Speech title, 'Untitled' when missing.")
    duration: float = Field(description="Duration in seconds.")
    created_at: Optional[Any] = Field(default=None, description="Creation timestamp as sent by Otter.")
    transcript_text: str = Field(description="Transcript paragraphs joined by newlines.")
    speakers: List[Any] = Field(description="Speakers as returned by Otter.")
    structured_transcript: Optional[List[Any]] = Field(
        default=None,
        description="Raw transcript segments (speaker, offsets, text), if available.",
    )


class LogoutResponse(BaseModel):
    success: bool = Field(description="Always true.")
    message: str = Field(description="Human-readable confirmation.")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str = Field(description="Short error category.")
    message: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "OK"})
    timestamp: str = Field(description="Current server time (ISO 8601, UTC).")
