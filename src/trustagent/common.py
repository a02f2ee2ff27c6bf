"""Terminal output helpers shared by the API launcher and the CLI shell."""

from enum import Enum
from typing import (
    Any,
    Iterable,
    Mapping,
)

_RESET = "\033[0m"


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"

    def wrap(self, text: str) -> str:
        return f"{self.value}{text}{_RESET}"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(color.wrap(text), *args, **kwargs)


def print_statuses(statuses: Iterable[str]) -> None:
    """Echo run progress ("Thinking...", "Using tool: x") dimmed and indented."""
    for status in statuses:
        colored_print(f"  {status}", AnsiColors.GREY)


def format_tool(tool: Mapping[str, Any]) -> str:
    """One line of the tool listing: ``name [backend]: description``."""
    line = f"  {tool['tool_name']} [{tool['backend_name']}]"
    if tool.get("description"):
        line += f": {tool['description']}"
    return line
