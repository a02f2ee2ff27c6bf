"""
Backend adapter for Model Context Protocol servers.

Starting and stopping server processes is the owner's job; this adapter wraps a
``mcp.ClientSession`` that is already initialised and routes tool calls through it.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
)

from mcp import ClientSession
from mcp.shared.exceptions import McpError

from trustagent.core.errors import TransportError
from trustagent.core.schema import (
    ToolDescriptor,
    ToolFailure,
    ToolOutcome,
    ToolSuccess,
)
from trustagent.tools import ToolBackend

logger = logging.getLogger(__name__)


class McpToolBackend(ToolBackend):
    """Tool backend backed by a running MCP server session."""

    def __init__(self, name: str, session: ClientSession):
        super().__init__(name)
        self._session = session
        self._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    def mark_disconnected(self) -> None:
        """Flag the server as stopped; the registry owner calls this on shutdown."""
        self._connected = False

    async def list_tools(self) -> List[ToolDescriptor]:
        try:
            result = await self._session.list_tools()
        except McpError as exc:
            raise TransportError(f"MCP server '{self.name}' failed to list tools: {exc}") from exc
        except (ConnectionError, OSError) as exc:
            self._connected = False
            raise TransportError(str(exc)) from exc

        return [
            ToolDescriptor(
                backend_name=self.name,
                tool_name=tool.name,
                description=tool.description or "",
            )
            for tool in result.tools
        ]

    async def invoke(self, tool_name: str, arguments: Dict[str, Any] | None) -> ToolOutcome:
        try:
            result = await self._session.call_tool(tool_name, arguments)
        except McpError as exc:
            logger.warning("MCP server '%s' rejected '%s': %s", self.name, tool_name, exc)
            return ToolFailure(error=str(exc))
        except (ConnectionError, OSError) as exc:
            self._connected = False
            raise TransportError(str(exc)) from exc

        if result.isError:
            texts = [getattr(item, "text", str(item)) for item in result.content or []]
            return ToolFailure(error="\n".join(texts) or "tool reported an error")
        return ToolSuccess(payload=result.model_dump(mode="json", exclude_none=True))
