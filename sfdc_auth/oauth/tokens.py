"""Token data structures.

The TokenBundle is what a successful run produces: the access token,
the refresh token and the instance URL to use for subsequent API calls.
"""

from dataclasses import dataclass
from typing import Any

# Keys written to the process output, in order
OUTPUT_FIELDS = ("access_token", "refresh_token", "instance_url")


@dataclass(frozen=True)
class TokenBundle:
    """Tokens returned by the Salesforce token endpoint.

    Only access_token, refresh_token and instance_url are part of the
    output. The remaining fields are kept when Salesforce sends them but
    nothing downstream depends on them.

    Attributes:
        access_token: Short-lived access token
        refresh_token: Refresh token (requires the refresh_token scope)
        instance_url: Org instance to send API requests to
        id: Identity URL for the authenticated user
        token_type: Token type (typically "Bearer")
        issued_at: Issue time in milliseconds since the epoch, as sent
        signature: HMAC signature over id and issued_at
        scope: Space-separated list of granted scopes
    """

    access_token: str
    refresh_token: str
    instance_url: str
    id: str | None = None
    token_type: str | None = None
    issued_at: str | None = None
    signature: str | None = None
    scope: str | None = None

    def __repr__(self) -> str:
        # Keep tokens out of logs and tracebacks
        return f"TokenBundle(instance_url={self.instance_url!r}, token_type={self.token_type!r})"

    def has_refresh_token(self) -> bool:
        """Check if the provider issued a refresh token."""
        return len(self.refresh_token) > 0

    def to_dict(self) -> dict[str, str]:
        """Serialize to the three-key output mapping."""
        return {name: getattr(self, name) for name in OUTPUT_FIELDS}

    @classmethod
    def from_token_response(cls, response: dict[str, Any]) -> "TokenBundle":
        """Create TokenBundle from the token endpoint JSON response.

        Missing required fields become empty strings rather than errors.

        Args:
            response: JSON object from the token endpoint

        Returns:
            TokenBundle instance
        """

        def optional(name: str) -> str | None:
            value = response.get(name)
            return None if value is None else str(value)

        return cls(
            access_token=str(response.get("access_token") or ""),
            refresh_token=str(response.get("refresh_token") or ""),
            instance_url=str(response.get("instance_url") or ""),
            id=optional("id"),
            token_type=optional("token_type"),
            issued_at=optional("issued_at"),
            signature=optional("signature"),
            scope=optional("scope"),
        )
