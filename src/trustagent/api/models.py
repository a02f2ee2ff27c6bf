"""
Pydantic models for TrustAgent API requests and responses.
This module defines the request and response schemas used by the TrustAgent API.
"""

from datetime import datetime
from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionRequest(BaseModel):
    """Request to create a new session."""

    title: Optional[str] = Field(None, description="Initial title; derived from the chat if unset")


class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class SessionSummary(BaseModel):
    """One entry of the session list."""

    session_id: str
    title: str
    message_count: int
    created_at: datetime
    updated_at: datetime


class RenameRequest(BaseModel):
    """New title for a session."""

    title: str = Field(..., min_length=1)


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for the agent")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")
    tools: Optional[List[str]] = Field(
        None, description="Names of the tools enabled for this message; all tools if omitted"
    )


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    session_id: str
    statuses: List[str] = Field(default_factory=list)
    rounds: int = 0


class ErrorDetail(BaseModel):
    """Body of the ``detail`` field when a run fails."""

    code: str
    message: str
    session_id: Optional[str] = Field(
        None, description="Session holding the partial run, when it was kept for continuing"
    )
