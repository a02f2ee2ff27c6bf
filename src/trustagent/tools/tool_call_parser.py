"""
Directive parser for raw assistant replies.

A reply is either a tool directive formatted like:
    {"tool_name": "<name>", "arguments": { ... }}
or a final answer in plain text.  Parsing runs in two tiers:

1. **strict** - the trimmed reply must be exactly one JSON object matching
   :class:`~trustagent.core.schema.ToolDirective`;
2. **heuristic** - when the reply is not bounded by braces, the text between the first ``{`` and
   the last ``}`` is decoded instead.  A hit here is a format-compliance violation and is logged.

Anything else, including malformed JSON, is returned verbatim as a final answer.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from trustagent.core.schema import (
    FinalAnswer,
    ParsedDirective,
    ParsedReply,
    ToolDirective,
)

logger = logging.getLogger(__name__)


class ToolCallParseError(ValueError):
    """Raised when a candidate string cannot be decoded into a ToolDirective."""


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------
def decode_directive(candidate: str) -> ToolDirective:
    """Decode *candidate* as exactly one ToolDirective object."""
    try:
        return ToolDirective.model_validate_json(candidate)
    except ValidationError as exc:
        raise ToolCallParseError(str(exc)) from exc


def _is_braced(text: str) -> bool:
    return text.startswith("{") and text.endswith("}")


def _strict(text: str) -> Optional[ToolDirective]:
    try:
        return decode_directive(text)
    except ToolCallParseError as exc:
        logger.debug("Braced reply is not a tool directive: %s", exc)
        return None


def _heuristic(text: str) -> Optional[ToolDirective]:
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        return decode_directive(text[start : end + 1])
    except ToolCallParseError:
        return None


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
def parse_reply(raw: str) -> ParsedReply:
    """
    Classify a raw assistant reply.

    Returns
    -------
    ParsedDirective
        When the reply decodes as a tool directive; ``compliant`` is False if it had to be
        recovered from surrounding text.
    FinalAnswer
        Otherwise, carrying *raw* unchanged.
    """
    trimmed = raw.strip()

    if _is_braced(trimmed):
        directive = _strict(trimmed)
        if directive is not None:
            return ParsedDirective(directive=directive, compliant=True)
        # A braced block that fails the schema is an answer, not a recovery candidate.
        return FinalAnswer(text=raw)

    directive = _heuristic(trimmed)
    if directive is not None:
        logger.warning(
            "Model reply violated the tool-call format; recovered directive for '%s'",
            directive.tool_name,
        )
        return ParsedDirective(directive=directive, compliant=False)

    return FinalAnswer(text=raw)
