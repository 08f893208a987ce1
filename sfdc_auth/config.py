"""Configuration loading for sfdc-auth.

Settings come from command-line flags first, then environment variables
(optionally loaded from a .env file), then built-in defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .oauth.callback import DEFAULT_PORT, DEFAULT_TIMEOUT
from .oauth.session import DEFAULT_DOMAIN

ENV_CLIENT_ID = "SFDC_CLIENT_ID"
ENV_CLIENT_SECRET = "SFDC_CLIENT_SECRET"
ENV_PORT = "SFDC_CALLBACK_PORT"
ENV_DOMAIN = "SFDC_DOMAIN"
ENV_TIMEOUT = "SFDC_CALLBACK_TIMEOUT"

# Env file search paths in priority order
ENV_SEARCH_PATHS = [
    Path(".env"),
]


class ConfigError(ValueError):
    """Invalid configuration value."""

    pass


@dataclass
class AuthConfig:
    """Resolved settings for one authentication run."""

    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    port: int = DEFAULT_PORT
    domain: str = DEFAULT_DOMAIN
    callback_timeout: float = DEFAULT_TIMEOUT
    quiet: bool = False
    open_browser: bool = True
    env_path: Path | None = None

    def has_credentials(self) -> bool:
        """Check if both client ID and client secret are set."""
        return bool(self.client_id) and bool(self.client_secret)


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file, preferring an explicit path."""
    if explicit_path:
        if explicit_path.exists():
            return explicit_path
        return None

    for path in ENV_SEARCH_PATHS:
        if path.exists():
            return path
    return None


def parse_port(value: str | int, source: str) -> int:
    """Parse and range-check a callback port."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{source} must be an integer, got {value!r}") from None
    if not 1 <= port <= 65535:
        raise ConfigError(f"{source} must be between 1 and 65535, got {port}")
    return port


def parse_timeout(value: str | float, source: str) -> float:
    """Parse a positive timeout in seconds."""
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{source} must be a number of seconds, got {value!r}") from None
    if timeout <= 0:
        raise ConfigError(f"{source} must be greater than zero, got {value!r}")
    return timeout


def resolve_config(
    client_id: str | None = None,
    client_secret: str | None = None,
    port: int | None = None,
    domain: str | None = None,
    callback_timeout: float | None = None,
    quiet: bool = False,
    open_browser: bool = True,
    env_path: Path | None = None,
) -> AuthConfig:
    """Merge flags, environment and defaults into an AuthConfig.

    Args:
        client_id: Client ID from the command line
        client_secret: Client secret from the command line
        port: Callback port from the command line
        domain: Login domain from the command line
        callback_timeout: Callback timeout from the command line
        quiet: Suppress informational output
        open_browser: Try to open the authorization URL in a browser
        env_path: Explicit path to .env file (optional)

    Returns:
        AuthConfig with every value resolved

    Raises:
        ConfigError: If a port or timeout value is invalid
    """
    # Find and load .env file first; existing environment wins
    env_file = find_env_file(env_path)
    if env_file:
        load_dotenv(env_file)

    if port is not None:
        resolved_port = parse_port(port, "--port")
    elif os.environ.get(ENV_PORT):
        resolved_port = parse_port(os.environ[ENV_PORT], ENV_PORT)
    else:
        resolved_port = DEFAULT_PORT

    if callback_timeout is not None:
        resolved_timeout = parse_timeout(callback_timeout, "--timeout")
    elif os.environ.get(ENV_TIMEOUT):
        resolved_timeout = parse_timeout(os.environ[ENV_TIMEOUT], ENV_TIMEOUT)
    else:
        resolved_timeout = float(DEFAULT_TIMEOUT)

    return AuthConfig(
        client_id=(client_id or os.environ.get(ENV_CLIENT_ID, "")).strip(),
        client_secret=(client_secret or os.environ.get(ENV_CLIENT_SECRET, "")).strip(),
        port=resolved_port,
        domain=(domain or os.environ.get(ENV_DOMAIN, "") or DEFAULT_DOMAIN).strip(),
        callback_timeout=resolved_timeout,
        quiet=quiet,
        open_browser=open_browser,
        env_path=env_file,
    )
