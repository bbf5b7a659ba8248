"""Pydantic models — the shared contract between backend and chat UI.

These models define the request/response shapes and the SSE event data
structure. The UI reads camelCase keys, so response models serialize by
alias.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Semantic events (what goes in the `data` field of each SSE frame)
# ---------------------------------------------------------------------------

EventType = Literal["Text", "Progress", "EndOfResponse", "Error"]


class SemanticEvent(BaseModel):
    """One normalized upstream message, independent of the wire format."""
    model_config = ConfigDict(frozen=True)

    type: EventType
    text: str | None = None
    error: str | None = None

    @classmethod
    def text_chunk(cls, text: str) -> SemanticEvent:
        return cls(type="Text", text=text)

    @classmethod
    def progress(cls, text: str) -> SemanticEvent:
        return cls(type="Progress", text=text)

    @classmethod
    def end_of_response(cls) -> SemanticEvent:
        return cls(type="EndOfResponse")

    @classmethod
    def failure(cls, error: str) -> SemanticEvent:
        return cls(type="Error", error=error)

    @property
    def is_terminal(self) -> bool:
        return self.type == "EndOfResponse"

    def to_json(self) -> str:
        """JSON for the SSE `data:` field, omitting unset keys."""
        return self.model_dump_json(exclude_none=True)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class StartSessionResponse(BaseModel):
    """POST /api/chat/session response."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    initial_message: str | None = Field(default=None, alias="initialMessage")


class CloseSessionResponse(BaseModel):
    """DELETE /api/chat/session response."""
    success: bool = True


class ErrorResponse(BaseModel):
    """Body of every non-2xx JSON response."""
    error: str


class HealthResponse(BaseModel):
    """GET /api/health response."""
    status: Literal["ok", "degraded"]
    version: str = "0.1.0"
    agent_configured: bool
    active_sessions: int = 0


# ---------------------------------------------------------------------------
# Upstream payloads
# ---------------------------------------------------------------------------

class SessionInfo(BaseModel):
    """What the upstream session-open call yields."""
    session_id: str
    initial_message: str | None = None
