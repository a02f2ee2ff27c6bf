"""Tests for the MCP backend adapter against a stub session."""

import asyncio
from typing import Any

import pytest
from mcp import types
from mcp.shared.exceptions import McpError

from trustagent.core.errors import TransportError
from trustagent.core.schema import (
    ToolFailure,
    ToolSuccess,
)
from trustagent.tools.mcp_backend import McpToolBackend


class StubSession:
    """Just enough of ``mcp.ClientSession`` for the adapter."""

    def __init__(self, result: Any = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[tuple] = []

    async def list_tools(self) -> types.ListToolsResult:
        return types.ListToolsResult(
            tools=[
                types.Tool(
                    name="read_file",
                    description="reads a file",
                    inputSchema={"type": "object"},
                )
            ]
        )

    async def call_tool(self, name: str, arguments: dict | None = None) -> types.CallToolResult:
        self.calls.append((name, arguments))
        if self.error is not None:
            raise self.error
        return self.result


def _text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)], isError=is_error
    )


def test_list_tools_maps_descriptors() -> None:
    backend = McpToolBackend("fs", StubSession())  # type: ignore[arg-type]

    descriptors = asyncio.run(backend.list_tools())

    assert [(d.backend_name, d.tool_name, d.description) for d in descriptors] == [
        ("fs", "read_file", "reads a file")
    ]


def test_successful_call_serialises_whole_result() -> None:
    session = StubSession(result=_text_result("hello"))
    backend = McpToolBackend("fs", session)  # type: ignore[arg-type]

    outcome = asyncio.run(backend.invoke("read_file", {"path": "a.txt"}))

    assert isinstance(outcome, ToolSuccess)
    assert outcome.payload["content"][0]["text"] == "hello"
    assert '"hello"' in outcome.render()
    assert session.calls == [("read_file", {"path": "a.txt"})]


def test_error_result_is_a_failure() -> None:
    session = StubSession(result=_text_result("no such file", is_error=True))
    backend = McpToolBackend("fs", session)  # type: ignore[arg-type]

    outcome = asyncio.run(backend.invoke("read_file", None))

    assert outcome == ToolFailure(error="no such file")


def test_protocol_error_is_a_failure() -> None:
    error = McpError(types.ErrorData(code=-32602, message="invalid params"))
    backend = McpToolBackend("fs", StubSession(error=error))  # type: ignore[arg-type]

    outcome = asyncio.run(backend.invoke("read_file", {}))

    assert isinstance(outcome, ToolFailure)
    assert "invalid params" in outcome.error


def test_lost_connection_is_a_transport_error() -> None:
    session = StubSession(error=BrokenPipeError("pipe closed"))
    backend = McpToolBackend("fs", session)  # type: ignore[arg-type]

    with pytest.raises(TransportError):
        asyncio.run(backend.invoke("read_file", {}))
    assert backend.connected is False


def test_mark_disconnected() -> None:
    backend = McpToolBackend("fs", StubSession())  # type: ignore[arg-type]

    backend.mark_disconnected()

    assert backend.connected is False
