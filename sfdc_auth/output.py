"""Output formatters for token JSON, status messages and errors."""

import json
import sys
from typing import Any

import click

from .oauth.tokens import TokenBundle


def format_tokens(bundle: TokenBundle) -> str:
    """Format the token bundle as pretty-printed JSON."""
    return json.dumps(bundle.to_dict(), indent=2)


def format_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
) -> str:
    """Format an error as JSON with helpful information."""
    data: dict[str, Any] = {
        "success": False,
        "error": {
            "type": error_type or type(error).__name__,
            "message": str(error),
            "help": help_text or "",
        },
    }
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        data["error"]["status_code"] = status_code
    return json.dumps(data, indent=2)


def output_error_json(
    error: Exception,
    error_type: str | None = None,
    help_text: str | None = None,
) -> None:
    """Output an error as JSON to stdout."""
    click.echo(format_error_json(error, error_type, help_text))
    sys.exit(1)


def output_error_human(error: Exception, help_text: str | None = None) -> None:
    """Output an error in human-readable format."""
    click.secho(f"Error: {error}", fg="red", err=True)
    if help_text:
        click.echo(f"\n{help_text}", err=True)
    sys.exit(1)


class OutputHandler:
    """Handles output: token JSON on stdout, everything else on stderr."""

    def __init__(self, quiet: bool = False, json_errors: bool = False):
        self.quiet = quiet
        self.json_errors = json_errors

    def status(self, message: str) -> None:
        """Output an informational message unless quiet."""
        if not self.quiet:
            click.echo(message, err=True)

    def banner(self) -> None:
        """Output the header shown at startup."""
        if not self.quiet:
            title = "Salesforce OAuth2 Authentication CLI"
            click.secho(title, bold=True, err=True)
            click.echo("=" * len(title), err=True)

    def tokens(self, bundle: TokenBundle) -> None:
        """Output the token bundle."""
        if not self.quiet:
            click.secho("\nAuthentication successful!", fg="green", err=True)
        click.echo(format_tokens(bundle))

    def error(
        self,
        error: Exception,
        error_type: str | None = None,
        help_text: str | None = None,
    ) -> None:
        """Output error response and exit."""
        if self.json_errors:
            output_error_json(error, error_type, help_text)
        else:
            output_error_human(error, help_text)
