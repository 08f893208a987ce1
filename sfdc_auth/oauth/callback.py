"""Localhost callback server for the Salesforce OAuth redirect.

This module provides a single-use HTTP server that receives the
authorization redirect. It:
- Listens on the configured callback port (8080 by default)
- Validates the redirect against the session's state token
- Hands exactly one outcome back to the flow coordinator
- Returns a small HTML page telling the operator what happened
- Ignores browser noise (favicon, other paths, non-GET methods)
"""

import asyncio
import hmac
import html
import logging
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import Any
from urllib.parse import parse_qs, urlparse

from .errors import CallbackBindError, CallbackError, CallbackTimeoutError
from .session import OAuthSession

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
CALLBACK_PATH = "/callback"

# Default timeout for waiting for callback
DEFAULT_TIMEOUT = 300  # seconds

# Time allowed for in-flight responses to finish during shutdown
DEFAULT_SHUTDOWN_GRACE = 5.0  # seconds

# Browsers open speculative connections that may never send a request
DEFAULT_REQUEST_TIMEOUT = 10.0  # seconds

MAX_HEADER_LINES = 100


def build_redirect_uri(port: int, path: str = CALLBACK_PATH) -> str:
    """Build the redirect URI registered with the Connected App."""
    return f"http://localhost:{port}{path}"


class ListenerState(Enum):
    """Lifecycle of the callback server."""

    IDLE = "idle"
    LISTENING = "listening"
    COMPLETED = "completed"


class FailureKind(str, Enum):
    """Why a callback was rejected."""

    PROVIDER_DENIED = "provider_denied"
    INVALID_STATE = "invalid_state"
    MISSING_CODE = "missing_code"


@dataclass(frozen=True)
class CallbackSuccess:
    """Callback carried a valid state and an authorization code."""

    authorization_code: str

    def __repr__(self) -> str:
        return "CallbackSuccess(authorization_code=<redacted>)"


@dataclass(frozen=True)
class CallbackFailure:
    """Callback was rejected.

    Attributes:
        kind: Which validation step failed
        reason: Message for the operator's terminal
    """

    kind: FailureKind
    reason: str


CallbackOutcome = CallbackSuccess | CallbackFailure


@dataclass
class CallbackParams:
    """Query parameters from the OAuth redirect.

    Attributes:
        code: The authorization code from the callback
        state: The state parameter from the callback
        error: Error code if authorization failed
        error_description: Human-readable error description
    """

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


def parse_callback_url(url: str) -> CallbackParams:
    """Parse OAuth callback URL parameters.

    Args:
        url: The callback URL (or request target) with query parameters

    Returns:
        CallbackParams with parsed parameters
    """
    parsed = urlparse(url)
    params = parse_qs(parsed.query)

    # Get first value of each parameter (or None if not present)
    def get_param(name: str) -> str | None:
        values = params.get(name, [])
        return values[0] if values else None

    return CallbackParams(
        code=get_param("code"),
        state=get_param("state"),
        error=get_param("error"),
        error_description=get_param("error_description"),
    )


def state_matches(received: str | None, expected: str) -> bool:
    """Compare the returned state against ours in constant time.

    A missing state never matches, even if ours were somehow empty.
    """
    if received is None or not expected:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


def classify_callback(params: CallbackParams, expected_state: str) -> CallbackOutcome:
    """Decide the outcome of a callback request.

    Checks run in order and the first match wins:
    1. provider error
    2. state mismatch
    3. missing code
    4. success

    Args:
        params: Parsed callback parameters
        expected_state: State token generated for this run

    Returns:
        CallbackSuccess or CallbackFailure
    """
    if params.error:
        return CallbackFailure(
            FailureKind.PROVIDER_DENIED,
            f"{params.error}: {params.error_description or ''}",
        )

    if not state_matches(params.state, expected_state):
        return CallbackFailure(FailureKind.INVALID_STATE, "invalid state")

    if not params.code:
        return CallbackFailure(FailureKind.MISSING_CODE, "missing code")

    return CallbackSuccess(authorization_code=params.code)


# HTML templates for callback responses
SUCCESS_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Authentication Successful</title>
    <style>
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #f3f3f3;
        }
        .card {
            background: white;
            padding: 40px 60px;
            border-radius: 8px;
            border-top: 6px solid #0176d3;
            text-align: center;
            box-shadow: 0 4px 16px rgba(0,0,0,0.12);
        }
        h1 { color: #181818; margin: 0 0 8px 0; font-size: 24px; }
        p { color: #444; margin: 0; }
    </style>
</head>
<body>
    <div class="card">
        <h1>Authentication Successful!</h1>
        <p>You can close this window and return to your terminal.</p>
    </div>
</body>
</html>"""

ERROR_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Authentication Failed</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #f3f3f3;
        }}
        .card {{
            background: white;
            padding: 40px 60px;
            border-radius: 8px;
            border-top: 6px solid #ba0517;
            text-align: center;
            box-shadow: 0 4px 16px rgba(0,0,0,0.12);
            max-width: 420px;
        }}
        h1 {{ color: #181818; margin: 0 0 8px 0; font-size: 24px; }}
        p {{ color: #444; margin: 0 0 16px 0; }}
        .error {{
            background: #fef1ee;
            padding: 12px;
            border-radius: 4px;
            color: #ba0517;
            font-family: monospace;
            font-size: 14px;
        }}
    </style>
</head>
<body>
    <div class="card">
        <h1>Authentication Failed</h1>
        <p>{message}</p>
        {detail}
    </div>
</body>
</html>"""

GENERIC_FAILURE_MESSAGE = "The authorization response could not be verified. Check your terminal."
ALREADY_HANDLED_MESSAGE = "This authorization request has already been handled."


def render_error_page(message: str, detail: str | None = None) -> str:
    """Render the failure page, HTML-escaping everything caller-supplied."""
    detail_html = f'<div class="error">{html.escape(detail)}</div>' if detail else ""
    return ERROR_HTML.format(message=html.escape(message), detail=detail_html)


def render_outcome_page(outcome: CallbackOutcome) -> tuple[HTTPStatus, str]:
    """Pick the status and page for a callback outcome.

    Provider errors are echoed back since they came from Salesforce.
    State and code failures get a generic message so the remote caller
    learns nothing about which check failed.
    """
    if isinstance(outcome, CallbackSuccess):
        return HTTPStatus.OK, SUCCESS_HTML
    if outcome.kind is FailureKind.PROVIDER_DENIED:
        return HTTPStatus.BAD_REQUEST, render_error_page(
            "Salesforce returned an error.", outcome.reason
        )
    return HTTPStatus.BAD_REQUEST, render_error_page(GENERIC_FAILURE_MESSAGE)


class LocalhostCallbackServer:
    """Single-use HTTP server for the OAuth callback.

    The first request to the callback path decides the outcome; the
    outcome is handed over through a one-shot future and later requests
    cannot change it.

    Usage:
        async with LocalhostCallbackServer(session, port=8080) as server:
            # Send the operator to the authorization URL
            outcome = await server.wait_for_callback()
    """

    def __init__(
        self,
        session: OAuthSession,
        port: int = DEFAULT_PORT,
        host: str = DEFAULT_HOST,
        path: str = CALLBACK_PATH,
        timeout: float = DEFAULT_TIMEOUT,
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        """Initialize callback server.

        Args:
            session: Session holding the expected state token (read-only here)
            port: Port to listen on; 0 lets the OS pick one
            host: Interface to bind
            path: URL path to listen on (default "/callback")
            timeout: Timeout in seconds to wait for callback
            shutdown_grace: Seconds allowed for in-flight responses on stop
            request_timeout: Seconds allowed for a client to send its request
        """
        self.session = session
        self.host = host
        self.port = port
        self.path = path
        self.timeout = timeout
        self.shutdown_grace = shutdown_grace
        self.request_timeout = request_timeout
        self.redirect_uri: str = build_redirect_uri(port, path)
        self.state = ListenerState.IDLE

        self._server: asyncio.Server | None = None
        self._outcome: asyncio.Future[CallbackOutcome] | None = None
        self._handlers: set[asyncio.Task[Any]] = set()

    @property
    def is_serving(self) -> bool:
        """Whether the server is currently accepting connections."""
        return self._server is not None and self._server.is_serving()

    @property
    def outcome(self) -> CallbackOutcome | None:
        """The recorded outcome, if a callback has been handled."""
        if self._outcome is None or not self._outcome.done() or self._outcome.cancelled():
            return None
        return self._outcome.result()

    async def start(self) -> str:
        """Start the callback server.

        Returns:
            The redirect URI to use in the authorization request

        Raises:
            CallbackBindError: If the port is unavailable
        """
        if self._server is not None:
            raise CallbackError("Callback server already started")

        self._outcome = asyncio.get_running_loop().create_future()

        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                self.host,
                self.port,
            )
        except OSError as e:
            raise CallbackBindError(self.host, self.port, e.strerror or str(e)) from e

        sockets = self._server.sockets
        if not sockets:
            self._server.close()
            self._server = None
            raise CallbackBindError(self.host, self.port, "no sockets created")

        # Reflects the OS-assigned port when started with port=0
        self.port = sockets[0].getsockname()[1]
        self.redirect_uri = build_redirect_uri(self.port, self.path)
        self.state = ListenerState.LISTENING

        logger.debug(f"Callback server listening on {self.host}:{self.port}{self.path}")
        return self.redirect_uri

    async def stop(self) -> None:
        """Stop the callback server, letting in-flight responses finish."""
        if self._server is None:
            return

        server = self._server
        server.close()

        pending = {task for task in self._handlers if not task.done()}
        if pending:
            _, pending = await asyncio.wait(pending, timeout=self.shutdown_grace)
            for task in pending:
                task.cancel()
            if pending:
                logger.debug(f"Cancelled {len(pending)} unfinished callback connection(s)")
                await asyncio.gather(*pending, return_exceptions=True)

        try:
            await asyncio.wait_for(server.wait_closed(), timeout=self.shutdown_grace)
        except TimeoutError:
            logger.warning("Callback server did not close within the grace period")

        self._server = None
        logger.debug("Callback server stopped")

    async def wait_for_callback(self) -> CallbackOutcome:
        """Wait for the OAuth callback.

        Returns:
            The outcome of the first callback request

        Raises:
            CallbackTimeoutError: If timeout is reached
        """
        if self._outcome is None:
            raise CallbackError("Server not started")

        try:
            # Shield so a timeout leaves the future intact for late writers
            return await asyncio.wait_for(asyncio.shield(self._outcome), timeout=self.timeout)
        except TimeoutError:
            raise CallbackTimeoutError(
                f"Timeout waiting for OAuth callback after {self.timeout} seconds"
            ) from None

    def _record_outcome(self, params: CallbackParams) -> CallbackOutcome | None:
        """Classify and record the first callback; later calls return None.

        There is no await between the check and the write, so only one
        request can ever get past this point.
        """
        if self._outcome is None or self._outcome.done():
            return None

        outcome = classify_callback(params, self.session.state_token)
        self._outcome.set_result(outcome)
        self.state = ListenerState.COMPLETED

        if isinstance(outcome, CallbackSuccess):
            logger.debug("Callback accepted: authorization code received")
        elif outcome.kind is FailureKind.INVALID_STATE:
            received = "missing" if params.state is None else "mismatched"
            logger.warning(f"Callback rejected: {received} state parameter")
        else:
            logger.debug(f"Callback rejected: {outcome.reason}")

        return outcome

    async def _read_request(self, reader: asyncio.StreamReader) -> tuple[str, str] | None:
        """Read the request line and skip headers.

        Returns:
            (method, target) or None if the request line is malformed
        """
        request_line = await reader.readline()
        request_text = request_line.decode("utf-8", errors="replace")

        # Parse request line (e.g., "GET /callback?code=xxx HTTP/1.1")
        parts = request_text.strip().split(" ")

        # Read headers (consume them but we don't need them)
        for _ in range(MAX_HEADER_LINES):
            header_line = await reader.readline()
            if header_line in (b"\r\n", b"\n", b""):
                break

        if len(parts) < 2:
            return None
        return parts[0], parts[1]

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle incoming HTTP connection."""
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
            task.add_done_callback(self._handlers.discard)

        try:
            try:
                request = await asyncio.wait_for(
                    self._read_request(reader), timeout=self.request_timeout
                )
            except TimeoutError:
                logger.debug("Callback connection closed without a request")
                return

            if request is None:
                await self._send_response(writer, HTTPStatus.BAD_REQUEST, "Invalid request")
                return

            method, target = request
            request_path = urlparse(target).path

            # Handle favicon requests (browsers often request this)
            if request_path == "/favicon.ico":
                await self._send_response(writer, HTTPStatus.NOT_FOUND, "")
                return

            # Only accept GET requests to our callback path
            if method != "GET":
                await self._send_response(
                    writer, HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed"
                )
                return

            if request_path != self.path:
                await self._send_response(writer, HTTPStatus.NOT_FOUND, "Not found")
                return

            outcome = self._record_outcome(parse_callback_url(target))
            if outcome is None:
                logger.debug("Ignoring callback request received after completion")
                await self._send_html_response(
                    writer,
                    HTTPStatus.BAD_REQUEST,
                    render_error_page(ALREADY_HANDLED_MESSAGE),
                )
                return

            status, page = render_outcome_page(outcome)
            await self._send_html_response(writer, status, page)

        except Exception as e:
            logger.warning(f"Error handling callback request: {e}")
            try:
                await self._send_response(
                    writer, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal error"
                )
            except Exception:
                pass

        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except Exception:
                pass

    async def _send_response(
        self,
        writer: asyncio.StreamWriter,
        status: HTTPStatus,
        body: str,
    ) -> None:
        """Send a plain text HTTP response."""
        payload = body.encode("utf-8")
        headers = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            f"Content-Type: text/plain; charset=utf-8\r\n"
            f"Content-Length: {len(payload)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(headers.encode("utf-8") + payload)
        await writer.drain()

    async def _send_html_response(
        self,
        writer: asyncio.StreamWriter,
        status: HTTPStatus,
        html_content: str,
    ) -> None:
        """Send an HTML HTTP response with security headers."""
        body = html_content.encode("utf-8")
        headers = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            f"Content-Type: text/html; charset=utf-8\r\n"
            f"Content-Length: {len(body)}\r\n"
            f"Cache-Control: no-store\r\n"
            f"X-Content-Type-Options: nosniff\r\n"
            f"X-Frame-Options: DENY\r\n"
            f"Content-Security-Policy: default-src 'none'; style-src 'unsafe-inline'\r\n"
            f"Referrer-Policy: no-referrer\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(headers.encode("utf-8") + body)
        await writer.drain()

    async def __aenter__(self) -> "LocalhostCallbackServer":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.stop()
