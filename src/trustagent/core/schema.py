"""
Schema definitions for completion endpoint <-> agent loop <-> tool backend messages.

These data models serve as the contract between the conversation store, the directive parser, the
tool router and the loop controller.  We keep them separate from runtime logic so they can be
imported anywhere without side-effects.
"""

import json
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    List,
    Literal,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------
class Role(str, Enum):
    """Author of a conversation turn."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """One immutable entry of a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    created_at: datetime = Field(default_factory=_utcnow)

    def to_message(self) -> dict[str, str]:
        """Return the ``{role, content}`` pair sent to the completion endpoint."""
        return {"role": self.role.value, "content": self.content}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
class ToolDescriptor(BaseModel):
    """A tool exposed by a backend, as advertised to the model."""

    model_config = ConfigDict(frozen=True)

    backend_name: str = Field(..., description="Name of the backend that owns the tool")
    tool_name: str = Field(..., description="Name the model uses to request the tool")
    description: str = ""


class ToolDirective(BaseModel):
    """A tool call the model wants the agent to execute."""

    model_config = ConfigDict(extra="forbid")

    tool_name: StrictStr
    arguments: Any = None


class ToolSuccess(BaseModel):
    """Payload returned by a backend for a successful call."""

    kind: Literal["success"] = "success"
    payload: Any = None

    def render(self) -> str:
        """Serialise the payload into a single text blob."""
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, default=str, ensure_ascii=False)


class ToolFailure(BaseModel):
    """Failure reported by a backend; fed back to the model, never raised."""

    kind: Literal["failure"] = "failure"
    error: str

    def render(self) -> str:
        """Describe the failure as text."""
        return f"Tool execution failed: {self.error}"


ToolOutcome = Union[ToolSuccess, ToolFailure]


# ---------------------------------------------------------------------------
# Run status notifications
# ---------------------------------------------------------------------------
class Thinking(BaseModel):
    """The loop is waiting on the completion endpoint."""

    kind: Literal["thinking"] = "thinking"

    def describe(self) -> str:
        return "Thinking..."


class UsingTool(BaseModel):
    """The loop is executing a tool."""

    kind: Literal["using_tool"] = "using_tool"
    tool_name: str

    def describe(self) -> str:
        return f"Using tool: {self.tool_name}"


RunStatus = Union[Thinking, UsingTool]


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------
class ParsedDirective(BaseModel):
    """A reply that decoded as a tool directive."""

    directive: ToolDirective
    compliant: bool = Field(
        True, description="False when the directive was recovered from surrounding prose"
    )


class FinalAnswer(BaseModel):
    """A reply that is the final answer for the user."""

    text: str


ParsedReply = Union[ParsedDirective, FinalAnswer]


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------
class AgentRunResult(BaseModel):
    """What a finished run hands back to the caller."""

    answer: str
    turns: List[Turn] = Field(default_factory=list)
    rounds: int = 0
    tool_calls: int = 0
