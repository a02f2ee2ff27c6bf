"""Shared fakes: a scripted completion endpoint and a recording tool backend."""

import asyncio
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

import pytest

from trustagent.agent.planner_interface import CompletionClient
from trustagent.core.schema import (
    ToolDescriptor,
    ToolFailure,
    ToolOutcome,
    ToolSuccess,
)
from trustagent.tools import ToolBackend


class ScriptedCompletionClient(CompletionClient):
    """Returns canned replies in order, then *fallback* forever."""

    default_model = "test-model"

    def __init__(self, replies: Sequence[Any] = (), fallback: str | None = None):
        self.replies = list(replies)
        self.fallback = fallback
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(self, model: str, messages: Sequence[Dict[str, str]]) -> str:
        self.calls.append([dict(m) for m in messages])
        if self.replies:
            reply = self.replies.pop(0)
        elif self.fallback is not None:
            reply = self.fallback
        else:
            raise AssertionError("completion endpoint called more often than scripted")
        if isinstance(reply, BaseException):
            raise reply
        return reply


class RecordingBackend(ToolBackend):
    """
    Backend whose tools return fixed results.

    A result that is an exception instance is raised from :meth:`invoke`; a string starting with
    ``"!"`` is reported as a tool failure.
    """

    def __init__(self, name: str, tools: Dict[str, Any], delay: float = 0.0):
        super().__init__(name)
        self.tools = tools
        self.delay = delay
        self.calls: List[tuple] = []
        self.is_connected = True

    @property
    def connected(self) -> bool:
        return self.is_connected

    async def list_tools(self) -> List[ToolDescriptor]:
        return [
            ToolDescriptor(backend_name=self.name, tool_name=name, description=f"{name} tool")
            for name in self.tools
        ]

    async def invoke(self, tool_name: str, arguments: Dict[str, Any] | None) -> ToolOutcome:
        self.calls.append((tool_name, arguments))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.tools[tool_name]
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, str) and result.startswith("!"):
            return ToolFailure(error=result[1:])
        return ToolSuccess(payload=result)


@pytest.fixture
def read_file_tool() -> ToolDescriptor:
    return ToolDescriptor(backend_name="fs", tool_name="read_file", description="reads a file")


@pytest.fixture
def fs_backend() -> RecordingBackend:
    return RecordingBackend("fs", {"read_file": "hello"})
