"""Configuration loading and saving for Dymium Provider.

The configuration is a flat JSON document at ``~/.dymium/config.json``.
Missing keys fall back to defaults so older files keep loading after new
fields are added.
"""

import json
import logging
import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from dotenv import load_dotenv

from .errors import ConfigError, InvalidUrlError

logger = logging.getLogger(__name__)

# Environment overrides for the well-known paths
ENV_HOME = "DYMIUM_HOME"
ENV_OPENCODE_CONFIG = "DYMIUM_OPENCODE_CONFIG"
ENV_OPENCODE_AUTH = "DYMIUM_OPENCODE_AUTH"

CONFIG_FILE = "config.json"
TOKEN_FILE = "token"

DEFAULT_LLM_ENDPOINT = "http://localhost:9090/v1"
DEFAULT_CLIENT_ID = "dymium"
DEFAULT_REALM = "dymium"
DEFAULT_REFRESH_INTERVAL = 60

# Version segment the routing app name is injected in front of
VERSION_SEGMENT = "/v1"


class AuthMode(str, Enum):
    """Authentication mode."""

    OAUTH = "oAuth"
    STATIC_KEY = "staticKey"

    @classmethod
    def parse(cls, value: Any) -> "AuthMode":
        """Parse a stored mode, defaulting to OAuth for unknown values."""
        for mode in cls:
            if isinstance(value, str) and value.lower() == mode.value.lower():
                return mode
        if value is not None:
            logger.warning(f"Unknown authMode {value!r} in config, using OAuth")
        return cls.OAUTH


def get_config_dir() -> Path:
    """Get the configuration directory (``~/.dymium`` unless overridden)."""
    override = os.environ.get(ENV_HOME)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".dymium"


def get_config_path() -> Path:
    """Get the config document path."""
    return get_config_dir() / CONFIG_FILE


def get_token_path() -> Path:
    """Get the credential artifact path."""
    return get_config_dir() / TOKEN_FILE


def get_opencode_config_path() -> Path:
    """Get OpenCode's config document path.

    OpenCode uses XDG-style locations on every platform, not the
    platform-native application directories.
    """
    override = os.environ.get(ENV_OPENCODE_CONFIG)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "opencode" / "opencode.json"


def get_opencode_auth_path() -> Path:
    """Get OpenCode's auth document path."""
    override = os.environ.get(ENV_OPENCODE_AUTH)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "share" / "opencode" / "auth.json"


def find_env_file(explicit_path: Path | None = None) -> Path | None:
    """Find the .env file, checking the working directory then ~/.dymium."""
    if explicit_path:
        if explicit_path.exists():
            return explicit_path
        return None

    for path in (Path(".env"), Path.home() / ".dymium" / ".env"):
        if path.exists():
            return path
    return None


def load_env(explicit_path: Path | None = None) -> Path | None:
    """Load environment overrides from a .env file if one is found."""
    env_file = find_env_file(explicit_path)
    if env_file:
        load_dotenv(env_file)
        logger.debug(f"Loaded environment from {env_file}")
    return env_file


def _non_empty(value: str | None) -> bool:
    return value is not None and len(value) > 0


@dataclass
class AppConfig:
    """Durable Dymium Provider configuration.

    Attributes:
        auth_mode: Which credential flow is active
        llm_endpoint: Base URL of the LLM gateway (e.g. http://host:9090/v1)
        issuer_url: Base URL of the OAuth issuer
        realm: Issuer realm
        client_id: OAuth client id
        username: Resource-owner username for the password grant
        refresh_interval_seconds: Scheduled refresh interval
        app: Optional gateway routing app name
        client_secret: OAuth client secret
        password: Resource-owner password
        refresh_token: Last refresh token issued by the token endpoint
        static_key: Static API key (static-key mode)
    """

    auth_mode: AuthMode = AuthMode.OAUTH
    llm_endpoint: str = DEFAULT_LLM_ENDPOINT
    issuer_url: str = ""
    realm: str = DEFAULT_REALM
    client_id: str = DEFAULT_CLIENT_ID
    username: str = ""
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL
    app: str | None = None
    client_secret: str | None = None
    password: str | None = None
    refresh_token: str | None = None
    static_key: str | None = None
    path: Path | None = field(default=None, repr=False, compare=False)

    def is_oauth_mode(self) -> bool:
        return self.auth_mode == AuthMode.OAUTH

    def is_static_key_mode(self) -> bool:
        return self.auth_mode == AuthMode.STATIC_KEY

    def has_credentials(self) -> bool:
        """Check whether the fields required by the current mode are set."""
        if self.is_static_key_mode():
            return _non_empty(self.static_key)
        return _non_empty(self.client_secret) and _non_empty(self.password)

    def app_name(self) -> str | None:
        """The routing app name, or None when unset or blank."""
        if self.app is None:
            return None
        app = self.app.strip()
        return app or None

    def token_endpoint_url(self) -> str:
        """Get the issuer's token endpoint URL.

        Raises:
            InvalidUrlError: If the issuer URL is not an absolute http(s) URL
        """
        issuer = self.issuer_url.strip().rstrip("/")
        try:
            parsed = httpx.URL(issuer)
        except (httpx.InvalidURL, TypeError) as e:
            raise InvalidUrlError(f"Invalid issuer URL: {issuer!r}") from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise InvalidUrlError(f"Invalid issuer URL: {issuer!r}")
        return f"{issuer}/realms/{self.realm}/protocol/openid-connect/token"

    def effective_endpoint(self) -> str:
        """Get the base URL actually used for API calls.

        In OAuth mode with an app name configured, the gateway routes by
        path, so the app is spliced in front of the last ``/v1`` segment
        (or ``/{app}/v1`` is appended when there is none):

            http://host:9090/v1 + app "foo" -> http://host:9090/foo/v1

        Static-key mode and an unset app leave the endpoint unchanged apart
        from a trailing slash.
        """
        endpoint = self.llm_endpoint.rstrip("/")
        app = self.app_name()

        if not self.is_oauth_mode() or app is None:
            return endpoint

        pos = endpoint.rfind(VERSION_SEGMENT)
        if pos >= 0:
            return f"{endpoint[:pos]}/{app}{endpoint[pos:]}"
        return f"{endpoint}/{app}{VERSION_SEGMENT}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk camelCase form."""
        return {
            "authMode": self.auth_mode.value,
            "llmEndpoint": self.llm_endpoint,
            "issuerUrl": self.issuer_url,
            "realm": self.realm,
            "clientId": self.client_id,
            "username": self.username,
            "refreshIntervalSeconds": self.refresh_interval_seconds,
            "app": self.app,
            "clientSecret": self.client_secret,
            "password": self.password,
            "refreshToken": self.refresh_token,
            "staticKey": self.static_key,
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize for display, with secrets replaced by presence flags."""
        data = self.to_dict()
        for key in ("clientSecret", "password", "refreshToken", "staticKey"):
            data[key] = _non_empty(data[key])
        data["effectiveEndpoint"] = self.effective_endpoint()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: Path | None = None) -> "AppConfig":
        """Deserialize, falling back to defaults for missing keys."""
        try:
            interval = int(data.get("refreshIntervalSeconds", DEFAULT_REFRESH_INTERVAL))
        except (TypeError, ValueError):
            interval = DEFAULT_REFRESH_INTERVAL

        return cls(
            auth_mode=AuthMode.parse(data.get("authMode")),
            llm_endpoint=data.get("llmEndpoint") or DEFAULT_LLM_ENDPOINT,
            issuer_url=data.get("issuerUrl") or "",
            realm=data.get("realm") or DEFAULT_REALM,
            client_id=data.get("clientId") or DEFAULT_CLIENT_ID,
            username=data.get("username") or "",
            refresh_interval_seconds=interval if interval > 0 else DEFAULT_REFRESH_INTERVAL,
            app=data.get("app"),
            client_secret=data.get("clientSecret"),
            password=data.get("password"),
            refresh_token=data.get("refreshToken"),
            static_key=data.get("staticKey"),
            path=path,
        )

    @classmethod
    def load(cls, path: Path | None = None) -> "AppConfig":
        """Load configuration from disk, or defaults if unavailable."""
        config_path = path or get_config_path()

        if not config_path.exists():
            logger.debug(f"No config at {config_path}, using defaults")
            return cls(path=config_path)

        try:
            with open(config_path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not load config from {config_path}, using defaults: {e}")
            return cls(path=config_path)

        if not isinstance(data, dict):
            logger.warning(f"Config at {config_path} is not an object, using defaults")
            return cls(path=config_path)

        return cls.from_dict(data, path=config_path)

    def save(self) -> None:
        """Save configuration to disk with owner-only permissions.

        Raises:
            ConfigError: If the file cannot be written
        """
        config_path = self.path or get_config_path()
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            raise ConfigError(f"Failed to save config to {config_path}: {e}") from e

        try:
            config_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
        except OSError as e:
            logger.warning(f"Could not set config file permissions: {e}")
