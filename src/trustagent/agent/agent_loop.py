"""Main orchestration loop for TrustAgent."""

from __future__ import annotations

import logging
import threading
from typing import (
    Any,
    Callable,
    Iterable,
    Mapping,
    Sequence,
)

from trustagent.agent.planner_interface import (
    CompletionClient,
    load_completion_client,
)
from trustagent.agent.prompt import compose_system_prompt
from trustagent.agent.tool_executor import (
    execute_tool,
    find_tool_collisions,
)
from trustagent.config import (
    Settings,
    settings,
)
from trustagent.core.conversation import (
    DEFAULT_CONTEXT_WINDOW,
    Conversation,
)
from trustagent.core.errors import (
    AgentError,
    ConfigurationError,
    IterationsExhausted,
    TransportError,
)
from trustagent.core.schema import (
    AgentRunResult,
    FinalAnswer,
    Role,
    RunStatus,
    Thinking,
    ToolDescriptor,
    Turn,
    UsingTool,
)
from trustagent.tools import (
    BackendRegistry,
    ToolBackend,
)
from trustagent.tools.tool_call_parser import parse_reply

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 20

StatusSink = Callable[[RunStatus], Any]
Backends = BackendRegistry | Mapping[str, ToolBackend]


def _snapshot(backends: Backends) -> Mapping[str, ToolBackend]:
    if isinstance(backends, BackendRegistry):
        return backends.snapshot()
    return dict(backends)


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class Agent:
    """
    Drives the completion endpoint through think / act / observe rounds.

    Each round makes exactly one completion call and at most one tool call.  Rounds run strictly
    one after another, since every prompt includes the turns appended by the previous round.
    """

    def __init__(
        self,
        client: CompletionClient,
        model: str | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        tool_timeout: float | None = None,
        status_sink: StatusSink | None = None,
    ):
        if max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be at least 1, got {max_iterations}")
        if context_window < 1:
            raise ConfigurationError(f"context_window must be at least 1, got {context_window}")

        self.client = client
        self.model = model or client.default_model
        self.max_iterations = max_iterations
        self.context_window = context_window
        self.tool_timeout = tool_timeout
        self.status_sink = status_sink

    def _emit(self, status: RunStatus) -> None:
        if self.status_sink is None:
            return
        try:
            self.status_sink(status)
        except Exception:  # pylint: disable=broad-except
            logger.warning("Status sink failed for %s", status.kind, exc_info=True)

    async def _complete(self, conversation: Conversation) -> str:
        messages = conversation.to_messages(self.context_window)
        try:
            return await self.client.complete(self.model, messages)
        except AgentError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise TransportError(str(exc)) from exc

    async def run(
        self,
        history: Iterable[Turn],
        tools: Sequence[ToolDescriptor],
        backends: Backends,
    ) -> AgentRunResult:
        """
        Run the loop until the model produces a final answer.

        Parameters
        ----------
        history:
            Prior turns, ending with the user's request.  Copied, never modified.
        tools:
            Tools the model may call this run.
        backends:
            Backend registry (re-snapshotted every round) or a fixed name -> backend mapping.

        Raises
        ------
        ToolNotFound, BackendUnavailable
            When a directive cannot be routed.
        IterationsExhausted
            After ``max_iterations`` rounds without a final answer; carries the tool rounds.
        TransportError
            When the completion endpoint or a backend is unreachable.
        """
        tools = list(tools)
        collisions = find_tool_collisions(tools)
        if collisions:
            logger.warning(
                "Tool names exposed by more than one backend (first match wins): %s", collisions
            )

        conversation = Conversation.from_history(history, compose_system_prompt(tools))
        history_length = len(conversation)
        logger.info("Running agent task with %d tool(s)", len(tools))

        tool_calls = 0
        for round_no in range(1, self.max_iterations + 1):
            logger.info("Agent loop iteration %d/%d", round_no, self.max_iterations)
            self._emit(Thinking())

            # Take the snapshot before suspending so the round sees one consistent registry.
            round_backends = _snapshot(backends)
            reply = await self._complete(conversation)

            parsed = parse_reply(reply)
            if isinstance(parsed, FinalAnswer):
                logger.info("LLM provided a final answer.")
                conversation.append(Role.ASSISTANT, parsed.text)
                return AgentRunResult(
                    answer=parsed.text,
                    turns=list(conversation.turns),
                    rounds=round_no,
                    tool_calls=tool_calls,
                )

            directive = parsed.directive
            logger.info("LLM requested tool '%s'", directive.tool_name)
            self._emit(UsingTool(tool_name=directive.tool_name))
            conversation.append(Role.ASSISTANT, reply)

            outcome = await execute_tool(directive, tools, round_backends, self.tool_timeout)
            tool_calls += 1
            result_text = outcome.render()
            logger.debug("Tool '%s' returned: %s", directive.tool_name, result_text)

            conversation.append(
                Role.USER, f"Tool result for '{directive.tool_name}':\n{result_text}"
            )

        raise IterationsExhausted(self.max_iterations, conversation.turns[history_length:])


# ---------------------------------------------------------------------------
# Shared context
# ---------------------------------------------------------------------------
class AgentContext:
    """
    Read-mostly state shared by concurrent runs: settings, completion client factory and the
    backend registry.

    :meth:`create_agent` copies what a run needs while holding the lock; the run itself never
    touches the lock.
    """

    def __init__(
        self,
        config: Settings | None = None,
        registry: BackendRegistry | None = None,
        client_factory: Callable[..., CompletionClient] = load_completion_client,
    ):
        self._lock = threading.Lock()
        self._config = (config or settings).model_copy()
        self.registry = registry or BackendRegistry()
        self._client_factory = client_factory

    def update_settings(self, config: Settings) -> None:
        with self._lock:
            self._config = config.model_copy()

    def snapshot_settings(self) -> Settings:
        with self._lock:
            return self._config.model_copy()

    def create_agent(self, status_sink: StatusSink | None = None) -> Agent:
        """
        Build an :class:`Agent` from the current settings.

        Raises
        ------
        ConfigurationError
            If the completion provider cannot be configured (e.g. missing API key).
        """
        config = self.snapshot_settings()
        client = self._client_factory(config=config)
        return Agent(
            client,
            max_iterations=config.MAX_ITERATIONS,
            context_window=config.CONTEXT_WINDOW,
            tool_timeout=config.TOOL_TIMEOUT,
            status_sink=status_sink,
        )
