"""Shared fixtures and utilities for sfdc-auth tests."""

import asyncio
import os
import socket
from collections.abc import Awaitable, Callable, Generator
from typing import Any

import pytest

from sfdc_auth.oauth.session import OAuthSession


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def session() -> OAuthSession:
    """Create a session with a known state token."""
    return OAuthSession.for_domain(
        domain="login.salesforce.com",
        client_id="test_client_id",
        client_secret="test_client_secret",
        redirect_uri="http://localhost:8080/callback",
        state_token="expected_state_token",
    )


@pytest.fixture
def token_response() -> dict[str, Any]:
    """A full Salesforce token endpoint response."""
    return {
        "access_token": "00Dxx0000001gPL!AR8AQJXg5oj8jXSgxJfA0lBog",
        "refresh_token": "5Aep861TSESvWeug_xvFHRBTTbf_YrTWgEyjBJrXU",
        "instance_url": "https://yourInstance.my.salesforce.com",
        "id": "https://login.salesforce.com/id/00Dxx0000001gPLEAY/005xx000001Sv6AAAS",
        "token_type": "Bearer",
        "issued_at": "1278448101416",
        "signature": "miQQ1J4sdMPiduBsvyRYPCDozqhe43KRc1i9LmZHR70=",
        "scope": "full refresh_token",
    }


# ============================================================================
# Network Fixtures
# ============================================================================


@pytest.fixture
def free_port() -> int:
    """Find a port on 127.0.0.1 that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port: int = s.getsockname()[1]
    return port


@pytest.fixture
def http_request() -> Callable[..., Awaitable[bytes]]:
    """Send a raw HTTP request to the local callback server.

    Returns the full response (status line, headers and body).
    """

    async def send(port: int, target: str, method: str = "GET") -> bytes:
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        request = f"{method} {target} HTTP/1.1\r\nHost: localhost:{port}\r\n\r\n"
        writer.write(request.encode())
        await writer.drain()
        response = await reader.read()
        writer.close()
        await writer.wait_closed()
        return response

    return send


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(
    tmp_path: Any, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Clear SFDC_* variables and run from an empty directory (no .env)."""
    old_env = os.environ.copy()
    for key in list(os.environ.keys()):
        if key.startswith("SFDC_"):
            del os.environ[key]
    monkeypatch.chdir(tmp_path)
    yield
    # Restore
    os.environ.clear()
    os.environ.update(old_env)
