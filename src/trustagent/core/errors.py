"""Errors that terminate an agent run.

Tool execution failures are *not* in this hierarchy: backends raise
:class:`ToolExecutionError`, which the router turns into conversation content.
"""

from typing import Sequence

from trustagent.core.schema import Turn


class AgentError(RuntimeError):
    """Base class for run-terminating errors."""

    code = "agent_error"


class ConfigurationError(AgentError):
    """A required setting (e.g. an API key) is missing or invalid."""

    code = "configuration_error"


class ToolNotFound(AgentError):
    """The model requested a tool that is not in the active tool set."""

    code = "tool_not_found"

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' not found.")
        self.tool_name = tool_name


class BackendUnavailable(AgentError):
    """The backend owning a tool is missing from the registry or disconnected."""

    code = "backend_unavailable"

    def __init__(self, backend_name: str):
        super().__init__(f"Tool backend '{backend_name}' not found or not running.")
        self.backend_name = backend_name


class IterationsExhausted(AgentError):
    """The loop hit its round cap without a final answer.

    ``turns`` holds the turns the run appended before giving up (tool directives and their
    results), so a caller can keep them and let the user ask the agent to continue.
    """

    code = "iterations_exhausted"

    def __init__(self, max_iterations: int, turns: Sequence[Turn] = ()):
        super().__init__(f"Agent exceeded maximum iterations ({max_iterations}).")
        self.max_iterations = max_iterations
        self.turns = list(turns)


class TransportError(AgentError):
    """The completion endpoint or a tool backend could not be reached.

    The message is the underlying error text, passed through unchanged.
    """

    code = "transport_error"


class ToolExecutionError(RuntimeError):
    """Raised by a backend when a requested tool cannot run or fails."""
