"""Salesforce OAuth 2.0 authorization code flow for sfdc-auth.

This package runs a single interactive authorization code flow against
Salesforce and returns the resulting tokens.

Main Components:
    OAuthFlow: Orchestrates one end-to-end flow
    LocalhostCallbackServer: Single-use redirect receiver
    TokenBundle: Access token, refresh token and instance URL

Quick Start:
    from sfdc_auth.oauth import OAuthFlow

    flow = OAuthFlow(client_id, client_secret, on_status=print)
    bundle = await flow.run()
    print(bundle.to_dict())
"""

from .callback import (
    CallbackFailure,
    CallbackOutcome,
    CallbackParams,
    CallbackSuccess,
    FailureKind,
    ListenerState,
    LocalhostCallbackServer,
    classify_callback,
    parse_callback_url,
)
from .errors import (
    CallbackBindError,
    CallbackError,
    CallbackTimeoutError,
    CredentialsMissingError,
    MissingCodeError,
    OAuthFlowError,
    ProviderDeniedError,
    StateGenerationError,
    StateMismatchError,
    TokenDecodeError,
    TokenExchangeError,
)
from .flow import OAuthFlow, build_authorization_url, exchange_code_for_tokens
from .session import DEFAULT_DOMAIN, OAuthSession, authorize_endpoint, token_endpoint
from .state import generate_state
from .tokens import TokenBundle

__all__ = [
    # Flow (main entry point)
    "OAuthFlow",
    "build_authorization_url",
    "exchange_code_for_tokens",
    # Session
    "OAuthSession",
    "DEFAULT_DOMAIN",
    "authorize_endpoint",
    "token_endpoint",
    "generate_state",
    # Tokens
    "TokenBundle",
    # Callback
    "LocalhostCallbackServer",
    "ListenerState",
    "CallbackParams",
    "CallbackOutcome",
    "CallbackSuccess",
    "CallbackFailure",
    "FailureKind",
    "classify_callback",
    "parse_callback_url",
    # Errors
    "OAuthFlowError",
    "CredentialsMissingError",
    "StateGenerationError",
    "CallbackError",
    "CallbackBindError",
    "CallbackTimeoutError",
    "ProviderDeniedError",
    "StateMismatchError",
    "MissingCodeError",
    "TokenExchangeError",
    "TokenDecodeError",
]
