"""Salesforce OAuth authorization code flow.

This module orchestrates the complete flow:
1. Generate the state token and build the session
2. Start the localhost callback server
3. Build the authorization URL and open the browser
4. Wait for the callback, bounded by a timeout
5. Stop the callback server
6. Exchange the authorization code for tokens
"""

import logging
import webbrowser
from typing import Any, Callable
from urllib.parse import urlencode

import httpx

from .callback import (
    CALLBACK_PATH,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    CallbackFailure,
    CallbackOutcome,
    FailureKind,
    LocalhostCallbackServer,
    build_redirect_uri,
)
from .errors import (
    MissingCodeError,
    OAuthFlowError,
    ProviderDeniedError,
    StateMismatchError,
    TokenDecodeError,
    TokenExchangeError,
)
from .session import DEFAULT_DOMAIN, OAuthSession, authorize_endpoint
from .state import generate_state
from .tokens import TokenBundle

logger = logging.getLogger(__name__)

# Full API access plus a refresh token
SCOPES = ("full", "refresh_token")

TOKEN_REQUEST_TIMEOUT = 30.0  # seconds


def build_authorization_url(
    domain: str,
    client_id: str,
    redirect_uri: str,
    state: str,
) -> str:
    """Build the authorization URL for browser redirect.

    Parameters are sorted by name so the same input always yields the
    same URL.

    Args:
        domain: Salesforce login domain (e.g. login.salesforce.com)
        client_id: Connected App consumer key
        redirect_uri: The callback URI
        state: State parameter for CSRF protection

    Returns:
        Complete authorization URL
    """
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "state": state,
        "scope": " ".join(SCOPES),
    }

    return f"{authorize_endpoint(domain)}?{urlencode(sorted(params.items()))}"


def _error_detail(response: httpx.Response) -> str:
    """Extract the OAuth error fields from an error response, if any."""
    try:
        error_data = response.json()
    except ValueError:
        # Don't include raw response body - it might contain secrets
        return ""
    if not isinstance(error_data, dict):
        return ""
    # Only extract safe error fields, not arbitrary response data
    return f": {error_data.get('error', '')} - {error_data.get('error_description', '')}"


async def exchange_code_for_tokens(
    token_url: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    code: str,
    http_client: httpx.AsyncClient | None = None,
) -> TokenBundle:
    """Exchange authorization code for tokens.

    Makes exactly one request. The code is single-use, so a failed
    exchange is never retried.

    Args:
        token_url: Salesforce token endpoint
        client_id: Connected App consumer key
        client_secret: Connected App consumer secret
        redirect_uri: The redirect URI used in authorization
        code: Authorization code from callback
        http_client: Optional HTTP client

    Returns:
        TokenBundle parsed from the token endpoint response

    Raises:
        TokenExchangeError: If the endpoint is unreachable or does not return 200
        TokenDecodeError: If the 200 response is not a JSON object
    """
    # Certificate verification stays on; there is no insecure fallback
    http = http_client or httpx.AsyncClient(timeout=TOKEN_REQUEST_TIMEOUT)
    should_close = http_client is None

    try:
        token_request: dict[str, str] = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "code": code,
        }

        logger.debug(f"Requesting tokens from {token_url}")
        response = await http.post(
            token_url,
            data=token_request,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
        )

        if response.status_code != 200:
            raise TokenExchangeError(
                f"Token exchange failed (HTTP {response.status_code}){_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            data: Any = response.json()
        except ValueError as e:
            raise TokenDecodeError("Token endpoint returned invalid JSON") from e

        if not isinstance(data, dict):
            raise TokenDecodeError(
                f"Token endpoint returned JSON {type(data).__name__}, expected an object"
            )

        return TokenBundle.from_token_response(data)

    except httpx.RequestError as e:
        raise TokenExchangeError(f"Network error during token exchange: {e}") from e
    finally:
        if should_close:
            await http.aclose()


def outcome_error(outcome: CallbackFailure) -> OAuthFlowError:
    """Map a rejected callback to its error class."""
    if outcome.kind is FailureKind.PROVIDER_DENIED:
        return ProviderDeniedError(f"OAuth error: {outcome.reason}")
    if outcome.kind is FailureKind.INVALID_STATE:
        return StateMismatchError(
            "Invalid state parameter in callback - possible CSRF attempt or stale link"
        )
    return MissingCodeError("No authorization code received")


class OAuthFlow:
    """Orchestrates one Salesforce authorization code flow.

    This class handles:
    1. State generation
    2. The localhost callback server lifecycle
    3. Browser-based authorization
    4. Token exchange

    Usage:
        flow = OAuthFlow(client_id, client_secret)
        bundle = await flow.run()
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        domain: str = DEFAULT_DOMAIN,
        port: int = DEFAULT_PORT,
        host: str = DEFAULT_HOST,
        callback_timeout: float = DEFAULT_TIMEOUT,
        open_browser: Callable[[str], bool] | None = webbrowser.open,
        on_status: Callable[[str], None] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize OAuth flow.

        Args:
            client_id: Connected App consumer key
            client_secret: Connected App consumer secret
            domain: Salesforce login domain
            port: Callback server port
            host: Interface the callback server binds
            callback_timeout: Timeout for waiting for callback
            open_browser: Called with the authorization URL; None disables it
            on_status: Optional callback for status messages
            http_client: Optional HTTP client for the token exchange
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.domain = domain
        self.port = port
        self.host = host
        self.callback_timeout = callback_timeout
        self.open_browser = open_browser
        self.on_status = on_status or (lambda msg: None)
        self.http_client = http_client

        self.session: OAuthSession | None = None
        self.authorization_url: str | None = None

    def _emit_status(self, message: str) -> None:
        """Emit a status message."""
        logger.info(message)
        self.on_status(message)

    def create_session(self) -> OAuthSession:
        """Create the session for this run with a fresh state token."""
        self.session = OAuthSession.for_domain(
            domain=self.domain,
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=build_redirect_uri(self.port, CALLBACK_PATH),
            state_token=generate_state(),
        )
        return self.session

    def _present_authorization_url(self, auth_url: str) -> None:
        """Show the authorization URL and try to open it in a browser."""
        self._emit_status(
            f"Please open the following URL in your browser to authenticate:\n{auth_url}"
        )

        if self.open_browser is not None:
            try:
                opened = self.open_browser(auth_url)
            except webbrowser.Error as e:
                logger.debug(f"Could not open browser: {e}")
                opened = False
            if not opened:
                logger.debug("Browser not opened; waiting for manual navigation")

    async def _await_callback(self, session: OAuthSession) -> CallbackOutcome:
        """Run the callback server until it yields an outcome or times out."""
        async with LocalhostCallbackServer(
            session,
            port=self.port,
            host=self.host,
            timeout=self.callback_timeout,
        ) as callback_server:
            # Matches the configured port unless the OS picked one
            session.redirect_uri = callback_server.redirect_uri

            self.authorization_url = build_authorization_url(
                self.domain,
                session.client_id,
                session.redirect_uri,
                session.state_token,
            )
            self._present_authorization_url(self.authorization_url)

            self._emit_status("Waiting for OAuth callback...")
            return await callback_server.wait_for_callback()

    async def run(self) -> TokenBundle:
        """Execute the complete OAuth flow.

        Returns:
            TokenBundle with access token, refresh token and instance URL

        Raises:
            CallbackBindError: If the callback port is unavailable
            CallbackTimeoutError: If no callback arrives in time
            ProviderDeniedError: If Salesforce reports an error
            StateMismatchError: If the callback state is wrong
            MissingCodeError: If the callback has no code
            TokenExchangeError: If the token endpoint rejects the code
            TokenDecodeError: If the token response is malformed
        """
        session = self.create_session()

        self._emit_status(f"Starting local server on port {self.port} for OAuth callback...")
        outcome = await self._await_callback(session)

        if isinstance(outcome, CallbackFailure):
            raise outcome_error(outcome)

        self._emit_status("Exchanging authorization code for tokens...")
        bundle = await exchange_code_for_tokens(
            session.token_endpoint,
            session.client_id,
            session.client_secret,
            session.redirect_uri,
            outcome.authorization_code,
            http_client=self.http_client,
        )

        if not bundle.has_refresh_token():
            logger.warning(
                "No refresh token in response; check that the Connected App "
                "allows the refresh_token scope"
            )

        return bundle
