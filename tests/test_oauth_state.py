"""Tests for state token generation."""

import re
from unittest.mock import patch

import pytest

from sfdc_auth.oauth.errors import StateGenerationError
from sfdc_auth.oauth.state import generate_state

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestGenerateState:
    """Tests for generate_state."""

    def test_minimum_length(self):
        """Test that the token is long enough to defeat guessing."""
        assert len(generate_state()) >= 40

    def test_encodes_256_bits(self):
        """Test that 32 random bytes encode to 43 unpadded characters."""
        assert len(generate_state()) == 43

    def test_url_safe_characters(self):
        """Test that the token needs no percent-encoding."""
        state = generate_state()
        assert URL_SAFE.match(state)
        assert "=" not in state

    def test_uniqueness(self):
        """Test that repeated calls never repeat a token."""
        states = [generate_state() for _ in range(1000)]
        assert len(set(states)) == 1000
        assert all(len(s) >= 40 for s in states)

    def test_fallback_when_random_source_fails(self):
        """Test the degraded token when the OS random source is unavailable."""
        with patch(
            "sfdc_auth.oauth.state.secrets.token_bytes",
            side_effect=NotImplementedError("no urandom"),
        ):
            first = generate_state()
            second = generate_state()

        assert len(first) >= 40
        assert URL_SAFE.match(first)
        assert first != second

    def test_fallback_logs_warning(self, caplog: pytest.LogCaptureFixture):
        """Test that falling back is logged as a warning."""
        with patch(
            "sfdc_auth.oauth.state.secrets.token_bytes",
            side_effect=OSError("entropy pool unavailable"),
        ):
            generate_state()

        assert any("falling back" in r.message for r in caplog.records)

    def test_strict_mode_raises(self):
        """Test that strict mode refuses the weaker fallback."""
        with patch(
            "sfdc_auth.oauth.state.secrets.token_bytes",
            side_effect=OSError("entropy pool unavailable"),
        ):
            with pytest.raises(StateGenerationError, match="unavailable"):
                generate_state(strict=True)
