"""Error taxonomy for the Salesforce OAuth flow.

Every failure in the flow is terminal for the run: the state token and
the authorization code are both single-use, so nothing here is retried.
The CLI decides how each error is reported and which exit code it maps to.
"""


class OAuthFlowError(Exception):
    """Base class for all OAuth flow errors."""

    pass


class CredentialsMissingError(OAuthFlowError):
    """Client ID or client secret was not supplied."""

    pass


class StateGenerationError(OAuthFlowError):
    """Secure random source unavailable and strict generation requested."""

    pass


class CallbackError(OAuthFlowError):
    """Error during OAuth callback handling."""

    pass


class CallbackBindError(CallbackError):
    """Callback server could not bind to the requested address."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        super().__init__(f"Could not start callback server on {host}:{port}: {reason}")


class CallbackTimeoutError(CallbackError):
    """Timeout waiting for OAuth callback."""

    pass


class ProviderDeniedError(OAuthFlowError):
    """The provider (or the operator) rejected the authorization request."""

    pass


class StateMismatchError(OAuthFlowError):
    """Callback state did not match the state sent in the authorization request."""

    pass


class MissingCodeError(OAuthFlowError):
    """Callback carried no authorization code."""

    pass


class TokenExchangeError(OAuthFlowError):
    """Error during token exchange.

    Attributes:
        status_code: HTTP status returned by the token endpoint, or None
            if the request never got a response
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TokenDecodeError(OAuthFlowError):
    """Token endpoint returned a body that is not a JSON object."""

    pass
