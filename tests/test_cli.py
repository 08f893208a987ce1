"""Tests for CLI module."""

import json
import os
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from sfdc_auth.cli import main
from sfdc_auth.oauth.errors import (
    CallbackBindError,
    CallbackTimeoutError,
    StateMismatchError,
    TokenExchangeError,
)
from sfdc_auth.oauth.tokens import TokenBundle

CREDENTIALS = ["--client-id", "test_client_id", "--client-secret", "test_client_secret"]


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def bundle() -> TokenBundle:
    return TokenBundle(
        access_token="00Dxx!access",
        refresh_token="5Aep861refresh",
        instance_url="https://na1.salesforce.com",
        token_type="Bearer",
    )


@pytest.fixture
def mock_flow(clean_env, bundle: TokenBundle) -> Generator[MagicMock, None, None]:
    """Patch OAuthFlow so no server or browser is involved."""
    with patch("sfdc_auth.cli.OAuthFlow") as MockFlow:
        flow = MagicMock()
        flow.run = AsyncMock(return_value=bundle)
        MockFlow.return_value = flow
        yield MockFlow


class TestMain:
    """Tests for the main command."""

    def test_version(self, runner: CliRunner):
        """Test --version flag."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output.lower()

    def test_help(self, runner: CliRunner):
        """Test --help flag."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Salesforce OAuth2" in result.output
        assert "--client-id" in result.output
        assert "--port" in result.output

    def test_success_prints_token_json(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that stdout holds exactly the three token fields."""
        result = runner.invoke(main, CREDENTIALS)

        assert result.exit_code == 0
        parsed = json.loads(result.stdout)
        assert parsed == {
            "access_token": "00Dxx!access",
            "refresh_token": "5Aep861refresh",
            "instance_url": "https://na1.salesforce.com",
        }
        assert "Salesforce OAuth2 Authentication CLI" in result.stderr
        assert "Authentication successful!" in result.stderr

    def test_defaults_passed_to_flow(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that unset options resolve to the defaults."""
        runner.invoke(main, CREDENTIALS)

        kwargs = mock_flow.call_args.kwargs
        assert kwargs["client_id"] == "test_client_id"
        assert kwargs["client_secret"] == "test_client_secret"
        assert kwargs["port"] == 8080
        assert kwargs["domain"] == "login.salesforce.com"
        assert kwargs["callback_timeout"] == 300.0
        assert kwargs["open_browser"] is not None

    def test_options_passed_to_flow(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that command-line options reach the flow."""
        result = runner.invoke(
            main,
            CREDENTIALS
            + ["-p", "9090", "-d", "company.my.salesforce.com", "-t", "60", "--no-browser"],
        )

        assert result.exit_code == 0
        kwargs = mock_flow.call_args.kwargs
        assert kwargs["port"] == 9090
        assert kwargs["domain"] == "company.my.salesforce.com"
        assert kwargs["callback_timeout"] == 60.0
        assert kwargs["open_browser"] is None

    def test_credentials_from_environment(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that SFDC_* variables are used when flags are absent."""
        os.environ["SFDC_CLIENT_ID"] = "env_id"
        os.environ["SFDC_CLIENT_SECRET"] = "env_secret"

        result = runner.invoke(main, [])

        assert result.exit_code == 0
        kwargs = mock_flow.call_args.kwargs
        assert kwargs["client_id"] == "env_id"
        assert kwargs["client_secret"] == "env_secret"

    def test_quiet(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that quiet mode prints only the token JSON."""
        result = runner.invoke(main, CREDENTIALS + ["--quiet"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["access_token"] == "00Dxx!access"
        assert result.stderr == ""

    def test_status_messages_routed_to_stderr(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that the flow's status callback writes to stderr."""

        async def run_with_status():
            on_status = mock_flow.call_args.kwargs["on_status"]
            on_status("Waiting for OAuth callback...")
            return TokenBundle("AT", "RT", "https://na1.salesforce.com")

        mock_flow.return_value.run = AsyncMock(side_effect=run_with_status)

        result = runner.invoke(main, CREDENTIALS)

        assert result.exit_code == 0
        assert "Waiting for OAuth callback..." in result.stderr
        assert "Waiting" not in result.stdout


class TestCredentialPrompt:
    """Tests for interactive credential entry."""

    def test_prompts_for_missing_credentials(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that both credentials are prompted for when not configured."""
        result = runner.invoke(main, [], input="prompted_id\nprompted_secret\n")

        assert result.exit_code == 0
        kwargs = mock_flow.call_args.kwargs
        assert kwargs["client_id"] == "prompted_id"
        assert kwargs["client_secret"] == "prompted_secret"
        assert "Enter Salesforce Client ID" in result.stderr
        assert "prompted_secret" not in result.stderr

    def test_prompts_only_for_secret(self, runner: CliRunner, mock_flow: MagicMock):
        result = runner.invoke(main, ["-c", "flag_id"], input="prompted_secret\n")

        assert result.exit_code == 0
        assert "Enter Salesforce Client ID" not in result.stderr
        assert mock_flow.call_args.kwargs["client_secret"] == "prompted_secret"

    def test_empty_client_id(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that an empty client ID stops before any flow starts."""
        result = runner.invoke(main, [], input="\n")

        assert result.exit_code == 1
        assert "client ID cannot be empty" in result.stderr
        mock_flow.assert_not_called()

    def test_empty_client_secret(self, runner: CliRunner, mock_flow: MagicMock):
        result = runner.invoke(main, ["-c", "flag_id"], input="   \n")

        assert result.exit_code == 1
        assert "client secret cannot be empty" in result.stderr
        mock_flow.assert_not_called()


class TestErrors:
    """Tests for error reporting and exit codes."""

    @pytest.mark.parametrize(
        "error,help_fragment",
        [
            (CallbackBindError("127.0.0.1", 8080, "Address already in use"), "--port"),
            (CallbackTimeoutError("Timeout waiting for OAuth callback"), "--timeout"),
            (StateMismatchError("Invalid state parameter in callback"), "new login"),
            (TokenExchangeError("Token exchange failed (HTTP 400)", status_code=400), "client secret"),
        ],
    )
    def test_flow_errors_exit_1(
        self, runner: CliRunner, mock_flow: MagicMock, error: Exception, help_fragment: str
    ):
        """Test that every flow failure exits 1 with a hint and no stdout."""
        mock_flow.return_value.run = AsyncMock(side_effect=error)

        result = runner.invoke(main, CREDENTIALS)

        assert result.exit_code == 1
        assert result.stdout == ""
        assert f"Error: {error}" in result.stderr
        assert help_fragment in result.stderr

    def test_json_errors(self, runner: CliRunner, mock_flow: MagicMock):
        """Test structured error output."""
        mock_flow.return_value.run = AsyncMock(
            side_effect=TokenExchangeError("Token exchange failed (HTTP 400)", status_code=400)
        )

        result = runner.invoke(main, CREDENTIALS + ["--json-errors"])

        assert result.exit_code == 1
        parsed = json.loads(result.stdout)
        assert parsed["success"] is False
        assert parsed["error"]["type"] == "TokenExchangeError"
        assert parsed["error"]["status_code"] == 400

    def test_secret_not_echoed_on_error(self, runner: CliRunner, mock_flow: MagicMock):
        mock_flow.return_value.run = AsyncMock(
            side_effect=TokenExchangeError("Token exchange failed (HTTP 400)", status_code=400)
        )

        result = runner.invoke(main, CREDENTIALS)

        assert "test_client_secret" not in result.output

    def test_invalid_port_flag(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that an out-of-range port is a usage error."""
        result = runner.invoke(main, CREDENTIALS + ["--port", "70000"])

        assert result.exit_code == 2
        mock_flow.assert_not_called()

    def test_invalid_timeout_flag(self, runner: CliRunner, mock_flow: MagicMock):
        result = runner.invoke(main, CREDENTIALS + ["--timeout", "0"])

        assert result.exit_code == 2
        mock_flow.assert_not_called()

    def test_invalid_env_port(self, runner: CliRunner, mock_flow: MagicMock):
        """Test that a bad environment value is reported, not ignored."""
        os.environ["SFDC_CALLBACK_PORT"] = "http"

        result = runner.invoke(main, CREDENTIALS)

        assert result.exit_code == 1
        assert "SFDC_CALLBACK_PORT" in result.stderr
        mock_flow.assert_not_called()
