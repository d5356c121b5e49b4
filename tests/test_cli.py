"""Tests for the CLI commands."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from conftest import make_http, make_response, token_body
from dymium_provider.cli import main
from dymium_provider.config import AppConfig
from dymium_provider.errors import UnauthorizedError
from dymium_provider.service import ProviderService


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestStatus:
    """Tests for the status command."""

    def test_json_status(self, runner: CliRunner, make_manager, oauth_config: AppConfig) -> None:
        """Test status reports configuration without secrets."""
        service = ProviderService(make_manager(oauth_config))

        result = runner.invoke(main, ["--json", "status"], obj={"service": service})

        assert result.exit_code == 0
        data = json.loads(result.output)["data"]
        assert data["config"]["authMode"] == "oAuth"
        assert data["config"]["clientSecret"] is True
        assert data["credentialsConfigured"] is True
        assert data["tokenFilePresent"] is False
        assert data["state"] == {"type": "idle"}
        assert "hunter2" not in result.output

    def test_human_status(self, runner: CliRunner, make_manager, static_config: AppConfig) -> None:
        service = ProviderService(make_manager(static_config))

        result = runner.invoke(main, ["status"], obj={"service": service})

        assert result.exit_code == 0
        assert "staticKey" in result.output
        assert "Credentials:        configured" in result.output


class TestSetup:
    """Tests for the setup commands."""

    def test_setup_oauth_prompts_for_secrets(
        self, runner: CliRunner, make_manager, config_path: Path
    ) -> None:
        """Test hidden prompts supply the client secret and password."""
        service = ProviderService(make_manager(AppConfig(path=config_path)))

        result = runner.invoke(
            main,
            [
                "setup",
                "oauth",
                "--issuer-url",
                "https://issuer.example.com",
                "--username",
                "alice",
                "--endpoint",
                "http://gw:9090/v1",
                "--app",
                "foo",
            ],
            input="s3cret\npw\n",
            obj={"service": service},
        )

        assert result.exit_code == 0, result.output
        saved = json.loads(config_path.read_text())
        assert saved["authMode"] == "oAuth"
        assert saved["clientSecret"] == "s3cret"
        assert saved["password"] == "pw"
        assert saved["app"] == "foo"
        assert saved["realm"] == "dymium"
        assert "OAuth configuration saved." in result.output

    def test_setup_static_key(self, runner: CliRunner, make_manager, oauth_config: AppConfig, config_path: Path) -> None:
        service = ProviderService(make_manager(oauth_config))

        result = runner.invoke(
            main,
            ["setup", "static-key", "--endpoint", "http://gw:9090/v1", "--key", "sk-1"],
            obj={"service": service},
        )

        assert result.exit_code == 0, result.output
        saved = json.loads(config_path.read_text())
        assert saved["authMode"] == "staticKey"
        assert saved["staticKey"] == "sk-1"
        assert saved["clientSecret"] is None


class TestRefresh:
    """Tests for the refresh command."""

    def test_refresh_success(self, runner: CliRunner, make_manager, oauth_config: AppConfig) -> None:
        http = make_http(post=make_response(200, token_body()))
        service = ProviderService(make_manager(oauth_config, http_client=http))

        result = runner.invoke(main, ["--json", "refresh"], obj={"service": service})

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)["data"]
        assert data["success"] is True
        assert data["state"]["type"] == "authenticated"
        assert "access-1" not in result.output

    def test_refresh_human_output(self, runner: CliRunner, make_manager, oauth_config: AppConfig) -> None:
        http = make_http(post=make_response(200, token_body()))
        service = ProviderService(make_manager(oauth_config, http_client=http))

        result = runner.invoke(main, ["refresh"], obj={"service": service})

        assert result.exit_code == 0, result.output
        assert "Refresh complete." in result.output
        assert "Status: Connected" in result.output
        assert "\"success\"" not in result.output

    def test_refresh_failure_exits_1(
        self, runner: CliRunner, make_manager, static_config: AppConfig, mock_verifier: MagicMock
    ) -> None:
        """Test a failed refresh reports its category and exits non-zero."""
        mock_verifier.verify.side_effect = UnauthorizedError("LLM endpoint rejected the API key (401 Unauthorized)")
        service = ProviderService(make_manager(static_config))

        result = runner.invoke(main, ["--json", "refresh"], obj={"service": service})

        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["success"] is False
        assert data["error"]["category"] == "unauthorized"
        assert data["data"]["state"]["type"] == "failed"


class TestLogoutAndSync:
    """Tests for the logout and sync commands."""

    def test_logout(self, runner: CliRunner, make_manager, oauth_config: AppConfig, config_path: Path) -> None:
        service = ProviderService(make_manager(oauth_config))

        result = runner.invoke(main, ["logout"], obj={"service": service})

        assert result.exit_code == 0, result.output
        assert "Logged out." in result.output
        assert json.loads(config_path.read_text())["password"] is None

    def test_sync_static_key(
        self, runner: CliRunner, make_manager, static_config: AppConfig, opencode_config_path: Path
    ) -> None:
        service = ProviderService(make_manager(static_config))

        result = runner.invoke(main, ["sync"], obj={"service": service})

        assert result.exit_code == 0, result.output
        provider = json.loads(opencode_config_path.read_text())["provider"]["dymium"]
        assert provider["options"]["apiKey"] == "sk-static"

    def test_sync_without_token_fails(self, runner: CliRunner, make_manager, oauth_config: AppConfig) -> None:
        service = ProviderService(make_manager(oauth_config))

        result = runner.invoke(main, ["sync"], obj={"service": service})

        assert result.exit_code == 1
        assert "No token available" in result.output


class TestMain:
    """Tests for global options."""

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("status", "setup", "refresh", "logout", "sync", "run"):
            assert command in result.output
