"""CLI client for the ProjectPilot API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    Optional,
    Tuple,
    cast,
)

import httpx

from projectpilot.common import (
    AnsiColors,
    color_for_result,
    colored_print,
)
from projectpilot.config import settings

logger = logging.getLogger(__name__)


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


def call_api(
    method: str,
    endpoint: str,
    data: Optional[Dict[str, Any]] = None,
    max_retries: int = 5,
    sleep: Any = time.sleep,
) -> Dict[str, Any]:
    """Call the API and return the JSON body, retrying while the server starts up."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=120.0) as client:
                response = client.request(method, api_url, json=data)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError as e:
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                sleep(retry_delay)
                continue
            error_msg = f"Error connecting to API: {e}"
        except httpx.HTTPStatusError as e:
            error_msg = f"API error ({e.response.status_code})"
            try:
                detail = e.response.json().get("detail")
                if detail:
                    error_msg = f"API error: {detail}"
            except ValueError:
                logger.debug("Non-JSON error body: %s", e.response.text)
        except httpx.HTTPError as e:
            error_msg = f"Error calling API: {e}"

        logger.error("API request error: %s", error_msg)
        colored_print(error_msg, AnsiColors.RED)
        return {"reply": error_msg, "error": True}

    # Only reached with max_retries <= 0
    error_msg = f"Failed to connect to API after {max_retries} attempts"
    colored_print(error_msg, AnsiColors.RED)
    return {"reply": error_msg, "error": True}


def ensure_project(project_id: Optional[str]) -> Optional[str]:
    """Return *project_id*, or create a scratch project when none is given."""
    if project_id:
        return project_id
    project = call_api("POST", "/projects", {"name": "Scratch project"})
    return project.get("id")


def run_cli(project_id: Optional[str] = None) -> None:
    """Run the CLI client that communicates with the API."""
    project_id = ensure_project(project_id)
    if not project_id:
        colored_print("⚠️ Failed to open a project", AnsiColors.RED)
        return

    session_response = call_api(
        "POST", "/sessions", {"project_id": project_id, "github_token": settings.GITHUB_TOKEN}
    )
    session_id = session_response.get("session_id")
    if not session_id:
        colored_print("⚠️ Failed to create a session", AnsiColors.RED)
        return

    colored_print(
        f"\nProjectPilot shell on project {project_id} - type 'exit' or 'quit' (or Ctrl+C) to exit",
        AnsiColors.GREEN,
    )
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        response = call_api("POST", "/agent", {"message": user_msg, "session_id": session_id})

        results = response.get("tool_results") or []
        for result in results:
            colored_print(
                f"[{result['call_name']}] {result['output_text']}",
                color_for_result(result["succeeded"]),
            )
        if not results:
            colored_print(response.get("reply", "No response from API"), AnsiColors.YELLOW)


if __name__ == "__main__":
    run_cli()
