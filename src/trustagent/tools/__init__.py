"""
Tool backends for TrustAgent.

A backend is anything that can execute named tools on request: an in-process set of Python
functions (:class:`LocalToolBackend`) or a connected MCP server
(:class:`~trustagent.tools.mcp_backend.McpToolBackend`).  Backends are looked up by name through a
:class:`BackendRegistry`, which concurrent runs read through immutable snapshots.
"""

import asyncio
import inspect
import logging
import threading
from abc import (
    ABC,
    abstractmethod,
)
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    TypedDict,
    get_type_hints,
)

from trustagent.core.schema import (
    ToolDescriptor,
    ToolFailure,
    ToolOutcome,
    ToolSuccess,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Backend interface
# ---------------------------------------------------------------------------
class ToolBackend(ABC):
    """A named executor of tools."""

    def __init__(self, name: str):
        self.name = name

    @property
    def connected(self) -> bool:
        """Whether the backend can accept calls right now."""
        return True

    @abstractmethod
    async def list_tools(self) -> List[ToolDescriptor]:
        """Return the tools this backend exposes."""

    @abstractmethod
    async def invoke(self, tool_name: str, arguments: Dict[str, Any] | None) -> ToolOutcome:
        """
        Run *tool_name* with *arguments*.

        Tool-level failures are returned as :class:`ToolFailure`.  Implementations raise
        :class:`~trustagent.core.errors.TransportError` only when the backend itself is unreachable.
        """


class BackendRegistry:
    """Thread-safe name -> backend map shared by concurrent runs."""

    def __init__(self, backends: Mapping[str, ToolBackend] | None = None):
        self._lock = threading.Lock()
        self._backends: Dict[str, ToolBackend] = dict(backends or {})

    def register(self, backend: ToolBackend) -> None:
        with self._lock:
            if backend.name in self._backends:
                logger.info("Replacing tool backend '%s'", backend.name)
            self._backends[backend.name] = backend

    def unregister(self, name: str) -> None:
        with self._lock:
            self._backends.pop(name, None)

    def get(self, name: str) -> ToolBackend | None:
        with self._lock:
            return self._backends.get(name)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._backends)

    def snapshot(self) -> Mapping[str, ToolBackend]:
        """Return an immutable copy; callers await on it without holding the lock."""
        with self._lock:
            return MappingProxyType(dict(self._backends))


async def collect_descriptors(backends: Mapping[str, ToolBackend]) -> List[ToolDescriptor]:
    """Gather descriptors from every connected backend, in registry order."""
    descriptors: List[ToolDescriptor] = []
    for name, backend in backends.items():
        if not backend.connected:
            logger.debug("Skipping disconnected backend '%s'", name)
            continue
        descriptors.extend(await backend.list_tools())
    return descriptors


# ---------------------------------------------------------------------------
# In-process backend
# ---------------------------------------------------------------------------
class ParameterInfo(TypedDict):
    """
    Information about a tool parameter.
    """

    type: str
    required: bool


class ToolSchema(TypedDict):
    """
    Schema for a tool function
    """

    description: str
    parameters: Mapping[str, ParameterInfo]


class LocalToolBackend(ToolBackend):
    """Backend whose tools are plain (sync or async) Python callables."""

    def __init__(self, name: str = "local"):
        super().__init__(name)
        self._tools: Dict[str, Callable] = {}

    def register(self, name: str) -> Callable:
        """
        Register a tool function under *name*.

        Used as a decorator:
            @backend.register("my_tool")
            def my_tool_function(arg1, arg2):
                return result

        Raises
        ------
        ValueError
            If a function with the same name is already registered on this backend.
        """
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        logger.debug("Registering tool '%s' on backend '%s'", name, self.name)

        def wrapper(fn: Callable) -> Callable:
            self._tools[name] = fn
            return fn

        return wrapper

    def get_tool_schemas(self) -> Mapping[str, ToolSchema]:
        """Extract parameter information from registered tools."""
        tool_schemas: Dict[str, ToolSchema] = {}
        for name, func in self._tools.items():
            sig = inspect.signature(func)
            type_hints = get_type_hints(func)
            params = {}
            for param_name, param in sig.parameters.items():
                param_type = type_hints.get(param_name, "any")
                param_type_name = getattr(param_type, "__name__", str(param_type))
                params[param_name] = ParameterInfo(
                    type=param_type_name, required=param.default == inspect.Parameter.empty
                )
            tool_schemas[name] = {"description": inspect.getdoc(func) or "", "parameters": params}
        return tool_schemas

    async def list_tools(self) -> List[ToolDescriptor]:
        descriptors = []
        for name, schema in self.get_tool_schemas().items():
            description = schema["description"]
            if schema["parameters"]:
                param_desc = ", ".join(
                    f"{p}: {info['type']}" + ("" if info["required"] else " (optional)")
                    for p, info in schema["parameters"].items()
                )
                description = f"{description} Arguments: {param_desc}.".strip()
            descriptors.append(
                ToolDescriptor(backend_name=self.name, tool_name=name, description=description)
            )
        return descriptors

    async def invoke(self, tool_name: str, arguments: Dict[str, Any] | None) -> ToolOutcome:
        tool_fn = self._tools.get(tool_name)
        if tool_fn is None:
            return ToolFailure(error=f"Tool '{tool_name}' is not registered.")

        args = arguments or {}
        try:
            inspect.signature(tool_fn).bind(**args)
        except TypeError as exc:
            logger.warning("Argument error while executing tool '%s': %s", tool_name, exc)
            return ToolFailure(error=f"Invalid arguments for tool '{tool_name}': {exc}")

        try:
            logger.debug("Executing tool '%s' with args=%s", tool_name, args)
            if inspect.iscoroutinefunction(tool_fn):
                result = await tool_fn(**args)
            else:
                result = await asyncio.to_thread(tool_fn, **args)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", tool_name)
            return ToolFailure(error=f"Tool '{tool_name}' raised an error: {exc}")
        return ToolSuccess(payload=result)


LOCAL_BACKEND = LocalToolBackend("local")
"""Default in-process backend; populated with :func:`register_tool`."""


def register_tool(name: str) -> Callable:
    """Register a tool function on :data:`LOCAL_BACKEND`."""
    return LOCAL_BACKEND.register(name)


@register_tool("echo")
def echo_tool(text: str) -> str:
    """Echo the input text back to the caller."""
    return text
