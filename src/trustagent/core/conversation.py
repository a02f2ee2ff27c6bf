"""
Append-only conversation store and the context window projection over it.

A :class:`Conversation` is built fresh for every run from the caller's history.  The caller's
sequence is copied; turns appended during the run never leak back into it.
"""

import logging
from typing import (
    Iterable,
    Iterator,
    List,
    Sequence,
    Tuple,
)

from trustagent.core.schema import (
    Role,
    Turn,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 30


class Conversation:
    """Ordered, append-only sequence of :class:`Turn` objects."""

    def __init__(self, turns: Iterable[Turn] = ()):
        self._turns: List[Turn] = list(turns)

    @classmethod
    def from_history(cls, history: Iterable[Turn], system_prompt: str) -> "Conversation":
        """
        Build a conversation whose first turn is the single system turn for this run.

        Any system turns in *history* are lifted out of their positions and their text is placed
        ahead of *system_prompt*, so exactly one system turn leads the conversation.
        """
        caller_system: List[str] = []
        rest: List[Turn] = []
        for turn in history:
            if turn.role is Role.SYSTEM:
                caller_system.append(turn.content)
            else:
                rest.append(turn)

        if caller_system:
            logger.debug("Folding %d caller system turn(s) into the run prompt", len(caller_system))
            system_prompt = "\n\n".join(caller_system + [system_prompt])

        return cls([Turn(role=Role.SYSTEM, content=system_prompt), *rest])

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def append(self, role: Role, content: str) -> Turn:
        """Append a new turn and return it."""
        turn = Turn(role=role, content=content)
        self._turns.append(turn)
        return turn

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def to_messages(self, window_size: int | None = None) -> List[dict[str, str]]:
        """Return ``{role, content}`` dicts, optionally bounded by :func:`select_context_window`."""
        turns: Sequence[Turn] = self._turns
        if window_size is not None:
            turns = select_context_window(turns, window_size)
        return [turn.to_message() for turn in turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))


def select_context_window(turns: Sequence[Turn], window_size: int) -> List[Turn]:
    """
    Return the bounded list of turns to submit to the completion endpoint.

    Parameters
    ----------
    turns:
        The full conversation, system turn first.
    window_size:
        Number of non-initial turns to keep once the conversation outgrows it.

    Returns
    -------
    list[Turn]
        All turns when ``len(turns) <= window_size``; otherwise the first turn followed by the
        *window_size* most recent turns, in their original order.  *turns* is never modified.
    """
    if window_size < 1:
        raise ValueError(f"window_size must be at least 1, got {window_size}")

    if len(turns) <= window_size:
        return list(turns)
    return [turns[0], *turns[-window_size:]]
