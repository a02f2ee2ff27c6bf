"""Tests for the terminal output helpers."""

from trustagent.common import (
    AnsiColors,
    colored_print,
    format_tool,
    print_statuses,
)


def test_colored_print_uses_escape_codes(capsys) -> None:
    colored_print("hi", AnsiColors.RED)

    assert capsys.readouterr().out == "\033[91mhi\033[0m\n"


def test_print_statuses_are_grey_and_indented(capsys) -> None:
    print_statuses(["Thinking...", "Using tool: read_file"])

    assert capsys.readouterr().out.splitlines() == [
        "\033[90m  Thinking...\033[0m",
        "\033[90m  Using tool: read_file\033[0m",
    ]


def test_format_tool() -> None:
    tool = {"tool_name": "read_file", "backend_name": "fs", "description": "reads a file"}

    assert format_tool(tool) == "  read_file [fs]: reads a file"
    assert format_tool({**tool, "description": ""}) == "  read_file [fs]"
