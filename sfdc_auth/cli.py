"""CLI entry point for sfdc-auth."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from pathlib import Path

import click

from . import __version__
from .config import AuthConfig, ConfigError, resolve_config
from .oauth import (
    CallbackBindError,
    CallbackTimeoutError,
    CredentialsMissingError,
    MissingCodeError,
    OAuthFlow,
    OAuthFlowError,
    ProviderDeniedError,
    StateMismatchError,
    TokenDecodeError,
    TokenExchangeError,
)
from .oauth.callback import DEFAULT_PORT, DEFAULT_TIMEOUT
from .oauth.session import DEFAULT_DOMAIN
from .output import OutputHandler

# Logger for CLI
logger = logging.getLogger("sfdc_auth")


def help_for_error(error: Exception, config: AuthConfig) -> str | None:
    """Suggest what the operator can do about a failed run."""
    if isinstance(error, CallbackBindError):
        return (
            f"Port {error.port} is already in use. Free it or pick another port with "
            f"--port, and make sure the Connected App callback URL matches "
            f"http://localhost:<port>/callback."
        )
    if isinstance(error, CallbackTimeoutError):
        return "Complete the login in your browser before the timeout, or raise it with --timeout."
    if isinstance(error, ProviderDeniedError):
        return "Salesforce rejected the authorization request. Check the Connected App settings."
    if isinstance(error, StateMismatchError):
        return "Start a new login; authorization links cannot be reused across runs."
    if isinstance(error, MissingCodeError):
        return "The callback did not include an authorization code. Start a new login."
    if isinstance(error, TokenExchangeError):
        if error.status_code is None:
            return f"Could not reach {config.domain}. Check the --domain value and your network."
        return "Check the client secret and that the callback URL matches the Connected App."
    if isinstance(error, TokenDecodeError):
        return "Salesforce returned an unexpected token response. Try again later."
    if isinstance(error, CredentialsMissingError):
        return "Pass --client-id/--client-secret or set SFDC_CLIENT_ID/SFDC_CLIENT_SECRET."
    return None


def prompt_for_credentials(config: AuthConfig) -> None:
    """Prompt for whichever client credential is missing.

    Raises:
        CredentialsMissingError: If the operator enters an empty value
    """
    if not config.client_id:
        config.client_id = click.prompt(
            "Enter Salesforce Client ID", default="", show_default=False, err=True
        ).strip()
        if not config.client_id:
            raise CredentialsMissingError("client ID cannot be empty")

    if not config.client_secret:
        config.client_secret = click.prompt(
            "Enter Salesforce Client Secret",
            default="",
            show_default=False,
            hide_input=True,
            err=True,
        ).strip()
        if not config.client_secret:
            raise CredentialsMissingError("client secret cannot be empty")


@click.command()
@click.option("--client-id", "-c", help="Salesforce Client ID (Consumer Key)")
@click.option("--client-secret", "-s", help="Salesforce Client Secret (Consumer Secret)")
@click.option(
    "--port",
    "-p",
    type=click.IntRange(1, 65535),
    default=None,
    help=f"Port for OAuth callback server [default: {DEFAULT_PORT}]",
)
@click.option("--domain", "-d", help=f"Salesforce login domain [default: {DEFAULT_DOMAIN}]")
@click.option(
    "--timeout",
    "-t",
    "callback_timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help=f"Seconds to wait for the browser callback [default: {DEFAULT_TIMEOUT}]",
)
@click.option("--browser/--no-browser", "open_browser", default=True, help="Open the login URL in a browser")
@click.option("--quiet", "-q", is_flag=True, help="Suppress informational output")
@click.option("--json-errors", is_flag=True, help="Report errors as JSON on stdout")
@click.option(
    "--env-file",
    "env_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to .env file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__, prog_name="sfdc-auth")
def main(
    client_id: str | None,
    client_secret: str | None,
    port: int | None,
    domain: str | None,
    callback_timeout: float | None,
    open_browser: bool,
    quiet: bool,
    json_errors: bool,
    env_path: Path | None,
    verbose: bool,
) -> None:
    """Salesforce OAuth2 Authentication CLI.

    Authenticates with Salesforce using the OAuth2 authorization code flow
    and prints the access token, refresh token and instance URL as JSON.
    """
    output = OutputHandler(quiet=quiet, json_errors=json_errors)

    # Configure logging based on verbosity
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        config = resolve_config(
            client_id=client_id,
            client_secret=client_secret,
            port=port,
            domain=domain,
            callback_timeout=callback_timeout,
            quiet=quiet,
            open_browser=open_browser,
            env_path=env_path,
        )
    except ConfigError as e:
        output.error(e, error_type="ConfigError", help_text="Fix the value and try again.")
        return

    output.banner()

    try:
        if not config.has_credentials():
            prompt_for_credentials(config)
    except CredentialsMissingError as e:
        output.error(e, help_text=help_for_error(e, config))
        return

    logger.debug(f"Authenticating against {config.domain} with callback port {config.port}")

    flow = OAuthFlow(
        client_id=config.client_id,
        client_secret=config.client_secret,
        domain=config.domain,
        port=config.port,
        callback_timeout=config.callback_timeout,
        open_browser=webbrowser.open if config.open_browser else None,
        on_status=output.status,
    )

    try:
        bundle = asyncio.run(flow.run())
    except OAuthFlowError as e:
        output.error(e, help_text=help_for_error(e, config))
        return

    output.tokens(bundle)
