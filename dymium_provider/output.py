"""Output formatters for human-readable and JSON output."""

import json
import sys
from typing import Any

import click

from .errors import category_for
from .state import Authenticated, Failed, TokenState, status_text

# Status line colours by state type
_STATE_COLOURS = {
    "idle": "white",
    "authenticating": "yellow",
    "verifying": "yellow",
    "authenticated": "green",
    "failed": "red",
}


def format_json(data: Any, success: bool = True) -> str:
    """Format data as JSON output."""
    if success:
        output = {"success": True, "data": data}
    else:
        output = data  # Error dict already has success: false
    return json.dumps(output, indent=2, default=str)


def format_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
    data: Any = None,
) -> str:
    """Format an error as JSON with its failure category."""
    output: dict[str, Any] = {
        "success": False,
        "error": {
            "type": error_type or type(error).__name__,
            "message": str(error),
            "category": category_for(error),
            "help": help_text or "",
        },
    }
    if data is not None:
        output["data"] = data
    return json.dumps(output, indent=2, default=str)


def output_json(data: Any, success: bool = True) -> None:
    """Output data as JSON to stdout."""
    click.echo(format_json(data, success))


def output_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
    data: Any = None,
) -> None:
    """Output an error as JSON to stdout."""
    click.echo(format_error_json(error, error_type, help_text, data))
    sys.exit(1)


def output_human(message: str) -> None:
    """Output a human-readable message."""
    click.echo(message)


def output_error_human(error: Exception, help_text: str | None = None) -> None:
    """Output an error in human-readable format."""
    click.secho(f"Error: {error}", fg="red", err=True)
    if help_text:
        click.echo(f"\n{help_text}", err=True)
    sys.exit(1)


def echo_state(state: TokenState) -> None:
    """Print the status line for a token state."""
    click.secho(status_text(state), fg=_STATE_COLOURS.get(state.name, "white"), bold=True)
    if isinstance(state, Authenticated):
        click.echo(f"  Expires at: {state.expires_at.isoformat()}")
    elif isinstance(state, Failed):
        click.echo(f"  {state.error}")


class OutputHandler:
    """Handles output formatting based on mode (JSON or human)."""

    def __init__(self, json_mode: bool = False):
        self.json_mode = json_mode

    def success(self, data: Any, human_message: str | None = None) -> None:
        """Output success response."""
        if self.json_mode:
            output_json(data)
        elif human_message:
            output_human(human_message)

    def error(
        self,
        error: Exception,
        error_type: str | None = None,
        help_text: str | None = None,
        data: Any = None,
    ) -> None:
        """Output error response and exit with status 1."""
        if self.json_mode:
            output_error_json(error, error_type, help_text, data)
        else:
            output_error_human(error, help_text)
