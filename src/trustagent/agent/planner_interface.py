"""
Completion client interface for TrustAgent.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
conversation) stays model-agnostic.

We support two back-ends out of the box:

1. **OpenAI** (or any OpenAI-compatible endpoint via ``OPENAI_BASE_URL``).
2. **Anthropic** via the Messages API.

Additional providers can be added by subclassing :class:`CompletionClient` and registering via
:func:`register_completion_client`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

from trustagent.config import (
    Settings,
    settings,
)
from trustagent.core.errors import (
    ConfigurationError,
    TransportError,
)

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response received"


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_CLIENT_REGISTRY: dict[str, Type["CompletionClient"]] = {}


def register_completion_client(name: str) -> Callable:
    """Decorator to register a completion client class under *name*."""

    def wrapper(cls: Type["CompletionClient"]) -> Type["CompletionClient"]:
        _CLIENT_REGISTRY[name] = cls
        return cls

    return wrapper


def load_completion_client(
    name: str | None = None, config: Settings | None = None
) -> "CompletionClient":
    """
    Factory that returns an instantiated completion client.

    Fallback order:
    1. *name* arg
    2. ``settings.PROVIDER`` env option
    3. default: ``"openai"``

    Raises
    ------
    ConfigurationError
        If the provider is unknown or its credentials are missing.
    """
    config = config or settings
    target = name or getattr(config, "PROVIDER", None) or "openai"
    cls = _CLIENT_REGISTRY.get(target.lower())
    if cls is None:
        raise ConfigurationError(f"Completion provider '{target}' is not registered.")
    return cls(config)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class CompletionClient(ABC):
    """Abstract chat-completion endpoint: ordered role/content messages in, reply text out."""

    default_model: str = ""

    @abstractmethod
    async def complete(self, model: str, messages: Sequence[Dict[str, str]]) -> str:
        """
        Return the first choice's message content.

        A missing reply is returned as :data:`NO_RESPONSE`; any transport or protocol failure is
        raised as :class:`TransportError`.
        """


# ---------------------------------------------------------------------------
# Concrete clients
# ---------------------------------------------------------------------------
@register_completion_client("openai")
class OpenAICompletionClient(CompletionClient):
    """OpenAI chat-completions client."""

    def __init__(self, config: Settings):
        if not config.OPENAI_API_KEY:
            raise ConfigurationError("OpenAI API key is not set in the configuration.")

        import openai  # pylint: disable=import-outside-toplevel

        self._client = openai.AsyncOpenAI(
            api_key=config.OPENAI_API_KEY, base_url=config.OPENAI_BASE_URL
        )
        self.default_model = config.OPENAI_MODEL

    async def complete(self, model: str, messages: Sequence[Dict[str, str]]) -> str:
        try:
            resp = await self._client.chat.completions.create(
                model=model,
                messages=list(messages),  # type: ignore[arg-type]
            )
        except Exception as e:  # pylint: disable=broad-except
            logger.error("OpenAI completion error: %s", str(e))
            raise TransportError(str(e)) from e

        if not resp.choices or resp.choices[0].message.content is None:
            logger.warning("OpenAI returned no content")
            return NO_RESPONSE

        content = resp.choices[0].message.content
        logger.debug("OpenAI response: %s", content)
        return content


@register_completion_client("anthropic")
class AnthropicCompletionClient(CompletionClient):
    """Anthropic Claude client; system turns go to the ``system`` parameter."""

    max_tokens = 8192

    def __init__(self, config: Settings):
        if not config.ANTHROPIC_API_KEY:
            raise ConfigurationError("Anthropic API key is not set in the configuration.")

        import anthropic  # pylint: disable=import-outside-toplevel

        self._client = anthropic.AsyncAnthropic(api_key=config.ANTHROPIC_API_KEY)
        self.default_model = config.ANTHROPIC_MODEL

    async def complete(self, model: str, messages: Sequence[Dict[str, str]]) -> str:
        system_parts: List[str] = [m["content"] for m in messages if m["role"] == "system"]
        chat = [m for m in messages if m["role"] != "system"]

        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                system="\n\n".join(system_parts),
                messages=chat,  # type: ignore[arg-type]
            )
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Anthropic completion error: %s", str(e))
            raise TransportError(str(e)) from e

        # Handle different content block types from Anthropic API
        texts = [block.text for block in response.content if block.type == "text"]
        if not texts:
            logger.warning("Anthropic returned no text content")
            return NO_RESPONSE

        content = "".join(texts)
        logger.debug("Anthropic response: %s", content)
        return content
