"""Shared fixtures and utilities for Dymium Provider tests."""

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from dymium_provider.config import AppConfig, AuthMode
from dymium_provider.keystore import Keystore
from dymium_provider.manager import TokenManager
from dymium_provider.opencode import OpenCodeSync
from dymium_provider.tokens import TokenFile
from dymium_provider.verifier import EndpointVerifier


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every well-known path into the test's temporary directory."""
    monkeypatch.setenv("DYMIUM_HOME", str(tmp_path / "dymium"))
    monkeypatch.setenv("DYMIUM_OPENCODE_CONFIG", str(tmp_path / "opencode" / "opencode.json"))
    monkeypatch.setenv("DYMIUM_OPENCODE_AUTH", str(tmp_path / "share" / "auth.json"))
    return tmp_path


# ============================================================================
# Path Fixtures
# ============================================================================


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "dymium" / "config.json"


@pytest.fixture
def opencode_config_path(tmp_path: Path) -> Path:
    return tmp_path / "opencode" / "opencode.json"


@pytest.fixture
def auth_path(tmp_path: Path) -> Path:
    return tmp_path / "share" / "auth.json"


@pytest.fixture
def token_file(tmp_path: Path) -> TokenFile:
    return TokenFile(tmp_path / "dymium" / "token")


# ============================================================================
# Config Fixtures
# ============================================================================


@pytest.fixture
def oauth_config(config_path: Path) -> AppConfig:
    """OAuth configuration with credentials but no refresh token."""
    return AppConfig(
        auth_mode=AuthMode.OAUTH,
        llm_endpoint="http://gateway.example.com:9090/v1",
        issuer_url="https://issuer.example.com",
        realm="dymium",
        client_id="dymium",
        username="alice",
        client_secret="client-secret",
        password="hunter2",
        path=config_path,
    )


@pytest.fixture
def static_config(config_path: Path) -> AppConfig:
    """Static-key configuration."""
    return AppConfig(
        auth_mode=AuthMode.STATIC_KEY,
        llm_endpoint="http://gateway.example.com:9090/v1",
        static_key="sk-static",
        path=config_path,
    )


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_keystore() -> MagicMock:
    """Keystore that stores nothing."""
    keystore = MagicMock(spec=Keystore)
    keystore.load.return_value = None
    return keystore


@pytest.fixture
def mock_verifier() -> MagicMock:
    """Verifier that accepts every token."""
    verifier = MagicMock(spec=EndpointVerifier)
    verifier.verify = AsyncMock(return_value=None)
    return verifier


def make_response(status_code: int = 200, json_data: Any = None, text: str = "") -> MagicMock:
    """Create a mock httpx response."""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


def token_body(access_token: str = "access-1", refresh_token: str | None = "refresh-1") -> dict[str, Any]:
    """A token endpoint success body."""
    body: dict[str, Any] = {
        "access_token": access_token,
        "expires_in": 300,
        "token_type": "Bearer",
        "refresh_expires_in": 1800,
    }
    if refresh_token is not None:
        body["refresh_token"] = refresh_token
    return body


def make_http(post: Any = None, get: Any = None) -> AsyncMock:
    """Create a mock httpx.AsyncClient with the given post/get results."""
    http = AsyncMock()
    http.post = AsyncMock(**_mock_kwargs(post))
    http.get = AsyncMock(**_mock_kwargs(get))
    http.aclose = AsyncMock()
    return http


def _mock_kwargs(value: Any) -> dict[str, Any]:
    if isinstance(value, list) or isinstance(value, BaseException):
        return {"side_effect": value}
    return {"return_value": value}


@pytest.fixture
def sync(opencode_config_path: Path, auth_path: Path, token_file: TokenFile) -> OpenCodeSync:
    return OpenCodeSync(config_path=opencode_config_path, auth_path=auth_path, token_file=token_file)


@pytest.fixture
def make_manager(
    token_file: TokenFile,
    sync: OpenCodeSync,
    mock_keystore: MagicMock,
    mock_verifier: MagicMock,
) -> Callable[..., TokenManager]:
    """Factory for managers wired to temporary files and mocks."""

    def factory(config: AppConfig, http_client: Any = None, **kwargs: Any) -> TokenManager:
        kwargs.setdefault("keystore", mock_keystore)
        kwargs.setdefault("verifier", mock_verifier)
        return TokenManager(
            config=config,
            token_file=token_file,
            sync=sync,
            http_client=http_client,
            **kwargs,
        )

    return factory
