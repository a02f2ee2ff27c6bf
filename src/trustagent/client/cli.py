"""CLI client for the TrustAgent API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Tuple,
)

import httpx

from trustagent.common import (
    AnsiColors,
    colored_print,
    format_tool,
    print_statuses,
)
from trustagent.config import settings

logger = logging.getLogger(__name__)

CONTINUE_HINT = "The agent ran out of steps. Type 'continue' to let it keep going."


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def _error_from_response(response: httpx.Response) -> Dict[str, Any]:
    """Turn an error response into ``{"reply", "error_code"}``."""
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None

    if isinstance(detail, dict):
        return {"reply": f"API error: {detail.get('message')}", "error_code": detail.get("code")}
    if detail:
        return {"reply": f"API error: {detail}", "error_code": None}
    return {"reply": f"API error: HTTP {response.status_code}", "error_code": None}


def call_api(
    endpoint: str,
    data: Dict[str, Any] | None = None,
    method: str = "POST",
    max_retries: int = 5,
    timeout: float | None = None,
) -> Any:
    """Make a request to the API and return the JSON body, retrying while the API starts up."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"

    for attempt in range(max_retries):
        try:
            # No read timeout unless given; an agent run has no deadline
            with httpx.Client(timeout=httpx.Timeout(timeout, connect=5.0)) as client:
                response = client.request(method, api_url, json=data)
        except httpx.ConnectError:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            break
        except httpx.HTTPError as e:
            logger.error("API request error: %s", str(e))
            return {"reply": f"Error connecting to API: {str(e)}", "error_code": None}

        if response.is_error:
            return _error_from_response(response)
        return response.json()

    error_msg = f"Failed to connect to API after {max_retries} attempts"
    return {"reply": error_msg, "error_code": None}


def print_tools() -> None:
    """Print the tools the agent can currently use."""
    tools = call_api("/tools", method="GET")
    if isinstance(tools, dict):
        colored_print(tools.get("reply", "Could not list tools"), AnsiColors.RED)
        return
    if not tools:
        colored_print("No tools available.", AnsiColors.GREY)
    for tool in tools:
        colored_print(format_tool(tool), AnsiColors.GREY)


def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    session_response = call_api("/sessions", {})
    session_id = session_response.get("session_id")

    if not session_id:
        colored_print(
            f"Failed to create a session: {session_response.get('reply')}", AnsiColors.RED
        )
        return

    colored_print(
        "\nTrustAgent shell - type '/tools' to list tools, 'exit' or 'quit' (or Ctrl+C) to exit",
        AnsiColors.GREEN,
    )
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue
        if user_msg == "/tools":
            print_tools()
            continue

        response = call_api("/agent", {"message": user_msg, "session_id": session_id})

        print_statuses(response.get("statuses", []))

        if "error_code" in response:
            colored_print(response["reply"], AnsiColors.RED)
            if response["error_code"] == "iterations_exhausted":
                colored_print(CONTINUE_HINT, AnsiColors.YELLOW)
            continue

        colored_print(response.get("reply", "No response from API"), AnsiColors.YELLOW)


if __name__ == "__main__":
    run_cli()
