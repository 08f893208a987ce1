"""Anti-forgery state token generation.

The state parameter protects the callback endpoint against CSRF: the
callback is only accepted when it echoes back the exact value we put in
the authorization request.
"""

import base64
import hashlib
import logging
import os
import secrets
import time

from .errors import StateGenerationError

logger = logging.getLogger(__name__)

# 32 bytes = 256 bits, which encodes to 43 base64url characters
STATE_BYTES = 32


def _encode(raw: bytes) -> str:
    """Base64URL encode without padding, so the token never needs percent-encoding."""
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _fallback_state() -> str:
    """Derive a state token from clocks and the process id.

    This is weaker than a token from the OS random source. It is only
    used when that source is unavailable.
    """
    seed = (
        f"state_{time.time_ns()}_{time.perf_counter_ns()}_"
        f"{time.monotonic_ns()}_{os.getpid()}_{id(object())}"
    )
    return _encode(hashlib.sha256(seed.encode("utf-8")).digest())


def generate_state(strict: bool = False) -> str:
    """Generate a cryptographically random state parameter.

    Args:
        strict: Raise instead of falling back when the secure random
            source is unavailable

    Returns:
        43-character URL-safe random string

    Raises:
        StateGenerationError: If strict is set and no secure random
            source is available
    """
    try:
        return _encode(secrets.token_bytes(STATE_BYTES))
    except (NotImplementedError, OSError) as e:
        if strict:
            raise StateGenerationError(f"Secure random source unavailable: {e}") from e
        logger.warning(
            f"Secure random source unavailable ({e}); "
            f"falling back to a time-derived state token"
        )
        return _fallback_state()
