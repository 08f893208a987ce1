"""Per-run OAuth session and Salesforce endpoint derivation."""

from dataclasses import dataclass, field

DEFAULT_DOMAIN = "login.salesforce.com"

AUTHORIZE_PATH = "/services/oauth2/authorize"
TOKEN_PATH = "/services/oauth2/token"


def _require_domain(domain: str) -> str:
    if not domain:
        raise ValueError("Salesforce domain must be a non-empty string")
    return domain


def authorize_endpoint(domain: str) -> str:
    """Get the authorization endpoint for a Salesforce login domain.

    Works for the default login domain as well as My Domain and sandbox
    hosts (e.g. company.my.salesforce.com).
    """
    return f"https://{_require_domain(domain)}{AUTHORIZE_PATH}"


def token_endpoint(domain: str) -> str:
    """Get the token endpoint for a Salesforce login domain."""
    return f"https://{_require_domain(domain)}{TOKEN_PATH}"


@dataclass
class OAuthSession:
    """State for a single authorization code flow.

    Created once per run by the flow coordinator and shared read-only
    with the callback server. The client secret is excluded from repr
    so it cannot end up in logs by accident.

    Attributes:
        state_token: Anti-forgery token sent in the authorization request
        client_id: Connected App consumer key
        client_secret: Connected App consumer secret
        redirect_uri: Local callback URI registered with the Connected App
        authorize_endpoint: Provider authorization endpoint
        token_endpoint: Provider token endpoint
    """

    state_token: str
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    authorize_endpoint: str
    token_endpoint: str

    @classmethod
    def for_domain(
        cls,
        domain: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        state_token: str,
    ) -> "OAuthSession":
        """Build a session with endpoints derived from the login domain."""
        return cls(
            state_token=state_token,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            authorize_endpoint=authorize_endpoint(domain),
            token_endpoint=token_endpoint(domain),
        )
