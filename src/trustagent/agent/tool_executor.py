"""Routes tool directives to the owning backend and wraps the outcome."""

import asyncio
import logging
from collections import Counter
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Sequence,
)

from trustagent.core.errors import (
    AgentError,
    BackendUnavailable,
    ToolExecutionError,
    ToolNotFound,
)
from trustagent.core.schema import (
    ToolDescriptor,
    ToolDirective,
    ToolFailure,
    ToolOutcome,
)
from trustagent.tools import ToolBackend

logger = logging.getLogger(__name__)


def find_tool_collisions(tools: Sequence[ToolDescriptor]) -> List[str]:
    """Return tool names exposed more than once, in first-seen order."""
    counts = Counter(tool.tool_name for tool in tools)
    return [name for name, count in counts.items() if count > 1]


def resolve_tool(tool_name: str, tools: Sequence[ToolDescriptor]) -> ToolDescriptor:
    """Return the first descriptor named *tool_name*, or raise :class:`ToolNotFound`."""
    for tool in tools:
        if tool.tool_name == tool_name:
            return tool
    raise ToolNotFound(tool_name)


def normalize_arguments(tool_name: str, arguments: Any) -> Dict[str, Any] | None:
    """Objects pass through; null and every other JSON shape mean "no arguments"."""
    if isinstance(arguments, dict):
        return arguments
    if arguments is not None:
        logger.warning(
            "Tool arguments for '%s' are not a JSON object or null; calling without arguments. "
            "Arguments: %r",
            tool_name,
            arguments,
        )
    return None


async def execute_tool(
    directive: ToolDirective,
    tools: Sequence[ToolDescriptor],
    backends: Mapping[str, ToolBackend],
    timeout: float | None = None,
) -> ToolOutcome:
    """
    Look up the tool named by *directive* and invoke it on its backend.

    Parameters
    ----------
    directive:
        The parsed tool call.
    tools:
        Descriptors active for this run; the first match by name wins.
    backends:
        Snapshot of the backend registry.
    timeout:
        Seconds to wait for the backend; ``None`` waits indefinitely.

    Returns
    -------
    ToolOutcome
        Success payload, or a :class:`ToolFailure` for anything the tool itself got wrong.

    Raises
    ------
    ToolNotFound
        If no descriptor carries the requested name.  No backend is contacted.
    BackendUnavailable
        If the owning backend is missing or disconnected.
    TransportError
        Propagated from the backend when it cannot be reached.
    """
    descriptor = resolve_tool(directive.tool_name, tools)

    backend = backends.get(descriptor.backend_name)
    if backend is None or not backend.connected:
        raise BackendUnavailable(descriptor.backend_name)

    arguments = normalize_arguments(directive.tool_name, directive.arguments)
    logger.debug(
        "Executing tool '%s' on backend '%s' with args=%s",
        directive.tool_name,
        descriptor.backend_name,
        arguments,
    )

    try:
        return await asyncio.wait_for(backend.invoke(directive.tool_name, arguments), timeout)
    except asyncio.TimeoutError as exc:
        if timeout is None:
            # Raised by the backend itself, not by our deadline
            return _unexpected_failure(directive.tool_name, descriptor.backend_name, exc)
        logger.warning("Tool '%s' timed out after %ss", directive.tool_name, timeout)
        return ToolFailure(error=f"Tool '{directive.tool_name}' timed out after {timeout}s")
    except ToolExecutionError as exc:
        logger.warning("Tool '%s' failed: %s", directive.tool_name, exc)
        return ToolFailure(error=str(exc))
    except AgentError:
        raise
    except Exception as exc:  # noqa: BLE001
        return _unexpected_failure(directive.tool_name, descriptor.backend_name, exc)


def _unexpected_failure(tool_name: str, backend_name: str, exc: Exception) -> ToolFailure:
    logger.error("Unhandled error in backend '%s'", backend_name, exc_info=exc)
    return ToolFailure(error=f"Tool '{tool_name}' raised an error: {exc}")
