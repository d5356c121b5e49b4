"""OpenCode configuration synchronization.

Keeps two documents owned by OpenCode pointed at the current endpoint and
credential:

- ``~/.config/opencode/opencode.json``: the ``dymium`` provider entry and the
  auth plugin registration
- ``~/.local/share/opencode/auth.json``: the ``dymium`` auth record

Only the keys this package owns are touched. User-authored fields (custom
headers, model overrides, other providers, other auth records) are preserved,
and an unchanged input produces no write, so this is safe to run on every
refresh tick.
"""

import copy
import json
import logging
import stat
from pathlib import Path
from typing import Any

import json5

from .config import AppConfig, get_opencode_auth_path, get_opencode_config_path
from .errors import ConfigSyncError
from .tokens import TokenFile

logger = logging.getLogger(__name__)

PROVIDER_KEY = "dymium"
SCHEMA_URL = "https://opencode.ai/config.json"

# npm-distributed auth plugin, and the marker for plugins that identify it
PLUGIN_SPEC = "dymium-auth-plugin@latest"
PLUGIN_MARKER = "dymium-auth-plugin"
# Legacy file:// plugin checkout that must not stay registered
STALE_PLUGIN_MARKER = "dymium-opencode-plugin"

MODEL_CATALOG: dict[str, Any] = {
    "claude-opus-4-5": {
        "name": "Claude Opus 4.5 (via Dymium)",
        "tool_call": True,
        "temperature": True,
        "attachment": True,
        "reasoning": True,
        "interleaved": {"field": "reasoning_content"},
        "limit": {"context": 200000, "output": 16384},
    },
    "claude-sonnet-4": {
        "name": "Claude Sonnet 4 (via Dymium)",
        "tool_call": True,
        "temperature": True,
        "attachment": True,
        "reasoning": False,
        "limit": {"context": 200000, "output": 16384},
    },
}


def merge_known_keys(target: dict[str, Any], patch: dict[str, Any]) -> bool:
    """Recursively patch ``target`` with ``patch`` in place.

    Keys present in ``patch`` are set in ``target`` when they differ; nested
    objects are merged key by key rather than replaced. Keys that only exist
    in ``target`` are left untouched. A non-object value standing where
    ``patch`` has an object is replaced by an object.

    Args:
        target: JSON object to update
        patch: Known keys and their desired values

    Returns:
        True if anything in ``target`` changed
    """
    changed = False
    for key, value in patch.items():
        current = target.get(key)
        if isinstance(value, dict):
            if not isinstance(current, dict):
                if key in target:
                    logger.warning(f"'{key}' was not an object; replacing with object")
                current = {}
                target[key] = current
                changed = True
            if merge_known_keys(current, value):
                changed = True
        elif key not in target or current != value:
            target[key] = copy.deepcopy(value)
            changed = True
    return changed


def parse_json_like(content: str) -> Any:
    """Parse strict JSON, falling back to JSON5 (comments, trailing commas).

    Raises:
        ConfigSyncError: If the content is neither
    """
    try:
        return json.loads(content)
    except ValueError:
        pass
    try:
        return json5.loads(content)
    except ValueError as e:
        raise ConfigSyncError(f"failed to parse as JSON/JSONC/JSON5: {e}") from e


def _plugin_matches(entry: Any, marker: str) -> bool:
    return isinstance(entry, str) and marker in entry


class OpenCodeSync:
    """Synchronizes OpenCode's config and auth documents."""

    def __init__(
        self,
        config_path: Path | None = None,
        auth_path: Path | None = None,
        token_file: TokenFile | None = None,
    ):
        self.config_path = config_path or get_opencode_config_path()
        self.auth_path = auth_path or get_opencode_auth_path()
        self.token_file = token_file or TokenFile()

    # Document I/O

    def _read_document(self, path: Path) -> Any | None:
        """Read and parse a document, or None if it does not exist."""
        if not path.exists():
            return None
        try:
            content = path.read_text()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigSyncError(f"Failed to read {path}: {e}") from e
        try:
            return parse_json_like(content)
        except ConfigSyncError as e:
            raise ConfigSyncError(f"{path}: {e}") from e

    def _write_document(self, path: Path, data: Any, private: bool = False) -> None:
        """Write a document back as strict JSON."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2))
            if private:
                path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
        except OSError as e:
            raise ConfigSyncError(f"Failed to write {path}: {e}") from e
        logger.info(f"Updated {path}")

    # Credential resolution

    def resolve_token(self, config: AppConfig) -> str | None:
        """Resolve the current credential.

        The credential artifact wins; in static-key mode the configured key
        is the fallback.
        """
        token = self.token_file.read()
        if token:
            return token
        if config.is_static_key_mode() and config.static_key:
            return config.static_key
        return None

    # Provider entry

    def _provider_entry(self, base_url: str, api_key: str | None) -> dict[str, Any]:
        options: dict[str, Any] = {"baseURL": base_url}
        if api_key is not None:
            options["apiKey"] = api_key
        return {
            "npm": "@ai-sdk/openai-compatible",
            "name": "Dymium",
            "api": base_url,
            "options": options,
            "models": copy.deepcopy(MODEL_CATALOG),
        }

    def _ensure_provider(self, document: dict[str, Any], config: AppConfig) -> bool:
        """Create or patch the provider entry. Returns True if changed."""
        changed = False

        providers = document.get("provider")
        if not isinstance(providers, dict):
            if "provider" in document:
                logger.warning("opencode.json 'provider' was not an object; replacing with object")
            providers = {}
            document["provider"] = providers
            changed = True

        api_key = self.resolve_token(config)
        base_url = config.effective_endpoint()

        existing = providers.get(PROVIDER_KEY)
        if not isinstance(existing, dict):
            providers[PROVIDER_KEY] = self._provider_entry(base_url, api_key)
            logger.info(f"Added {PROVIDER_KEY} provider to opencode.json")
            return True

        patch: dict[str, Any] = {"api": base_url, "options": {"baseURL": base_url}}
        if api_key is not None:
            patch["options"]["apiKey"] = api_key

        if merge_known_keys(existing, patch):
            logger.info(f"Updated {PROVIDER_KEY} provider in opencode.json (api {base_url})")
            changed = True

        return changed

    def _ensure_plugin(self, document: dict[str, Any]) -> bool:
        """Register exactly one auth plugin entry. Returns True if changed."""
        changed = False

        plugins = document.get("plugin")
        if isinstance(plugins, str):
            plugins = [plugins]
            changed = True
        elif not isinstance(plugins, list):
            if plugins is not None:
                logger.warning("opencode.json 'plugin' was not an array/string; replacing with array")
            plugins = []
            changed = True

        kept: list[Any] = []
        seen_plugin = False
        for entry in plugins:
            if _plugin_matches(entry, STALE_PLUGIN_MARKER):
                logger.info(f"Removed stale plugin entry {entry}")
                changed = True
                continue
            if _plugin_matches(entry, PLUGIN_MARKER):
                if seen_plugin:
                    changed = True
                    continue
                seen_plugin = True
            kept.append(entry)

        if not seen_plugin:
            kept.append(PLUGIN_SPEC)
            logger.info(f"Registered auth plugin {PLUGIN_SPEC}")
            changed = True

        document["plugin"] = kept
        return changed

    # Public operations

    def ensure_provider_configured(self, config: AppConfig) -> bool:
        """Bring opencode.json and auth.json in line with the configuration.

        opencode.json is written only when something changed. The auth
        record is always reconciled because the credential can rotate
        without the provider entry changing.

        Args:
            config: Current configuration

        Returns:
            True if opencode.json was written

        Raises:
            ConfigSyncError: If a document cannot be read, parsed or written,
                or no credential is available for the auth record
        """
        document = self._read_document(self.config_path)
        changed = False

        if document is None:
            document = {"$schema": SCHEMA_URL}
            changed = True
        elif not isinstance(document, dict):
            logger.warning("opencode.json root was not an object; recreating object root")
            document = {"$schema": SCHEMA_URL}
            changed = True

        if self._ensure_provider(document, config):
            changed = True
        if self._ensure_plugin(document):
            changed = True

        if changed:
            self._write_document(self.config_path, document)
        else:
            logger.debug("opencode.json already up to date")

        self.write_auth_record(config)
        return changed

    def write_auth_record(self, config: AppConfig) -> bool:
        """Upsert this provider's record in auth.json.

        Sibling records for other providers are preserved.

        Returns:
            True if auth.json was written

        Raises:
            ConfigSyncError: If no credential is available or the document
                cannot be read or written
        """
        token = self.resolve_token(config)
        if token is None:
            raise ConfigSyncError(
                "No token available (token file missing and no static API key configured)"
            )

        auth = self._read_document(self.auth_path)
        if auth is None:
            auth = {}
        elif not isinstance(auth, dict):
            logger.warning("auth.json root was not an object; recreating object root")
            auth = {}

        record: dict[str, Any] = {
            "type": "static" if config.is_static_key_mode() else "oauth",
            "key": token,
            "endpoint": config.llm_endpoint,
        }
        app = config.app_name()
        if app is not None:
            record["app"] = app

        if auth.get(PROVIDER_KEY) == record:
            logger.debug("auth.json already up to date")
            return False

        auth[PROVIDER_KEY] = record
        self._write_document(self.auth_path, auth, private=True)
        logger.info(f"Updated {PROVIDER_KEY} token in {self.auth_path} (mode: {record['type']})")
        return True

    def clear_auth(self) -> bool:
        """Remove only this provider's record from auth.json.

        A missing document or record is not an error.

        Returns:
            True if a record was removed
        """
        auth = self._read_document(self.auth_path)
        if not isinstance(auth, dict) or PROVIDER_KEY not in auth:
            return False

        del auth[PROVIDER_KEY]
        self._write_document(self.auth_path, auth, private=True)
        logger.info(f"Cleared {PROVIDER_KEY} entry from {self.auth_path}")
        return True
