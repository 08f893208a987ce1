"""sfdc-auth - Salesforce OAuth2 authorization code flow from the command line."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("sfdc-auth")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    # Core
    "OAuthFlow",
    "TokenBundle",
    "OAuthFlowError",
    # Config/output
    "AuthConfig",
    "resolve_config",
    "OutputHandler",
]

# Lazy imports to avoid circular dependencies
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name in ("OAuthFlow", "TokenBundle", "OAuthFlowError"):
        from .oauth import OAuthFlow, OAuthFlowError, TokenBundle
        return {"OAuthFlow": OAuthFlow, "TokenBundle": TokenBundle, "OAuthFlowError": OAuthFlowError}[name]
    elif name in ("AuthConfig", "resolve_config"):
        from .config import AuthConfig, resolve_config
        return {"AuthConfig": AuthConfig, "resolve_config": resolve_config}[name]
    elif name == "OutputHandler":
        from .output import OutputHandler
        return OutputHandler
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
