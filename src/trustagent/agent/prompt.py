"""System prompt composition: tool catalogue plus the tool-call output grammar."""

from typing import Sequence

from trustagent.core.schema import ToolDescriptor

GENERIC_SYSTEM_PROMPT = "You are a helpful AI assistant."

TOOL_SYSTEM_PROMPT = """\
You are a helpful AI assistant that can use tools to answer questions.

Available tools:
{tool_list}

When you need to use a tool, respond ONLY with a single JSON object in the following format:
{{"tool_name": "<tool_name>", "arguments": {{<arguments>}}}}
"tool_name" must be a string and "arguments" must be a JSON object or null.
Do not put any other text, explanation, commentary or markdown code fences before or after the \
JSON object.
When you have the final answer, respond with the answer directly as plain text."""


def describe_tools(tools: Sequence[ToolDescriptor]) -> str:
    """Render one ``- name: description`` line per tool, in input order."""
    return "\n".join(f"- {tool.tool_name}: {tool.description}" for tool in tools)


def compose_system_prompt(tools: Sequence[ToolDescriptor]) -> str:
    """Return the system instruction for a run with *tools* available."""
    if not tools:
        return GENERIC_SYSTEM_PROMPT
    return TOOL_SYSTEM_PROMPT.format(tool_list=describe_tools(tools))
