"""Credential lifecycle management for Dymium Provider.

The TokenManager owns the configuration and the current TokenState. It
drives the grant flows, writes the credential artifact, keeps OpenCode's
documents in sync and verifies the LLM endpoint before declaring success.

The manager itself is not locked; callers share one instance through
``ProviderService``, which serializes every operation.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

import httpx

from .config import AppConfig, AuthMode
from .errors import (
    AuthFailedError,
    ConfigError,
    ConfigSyncError,
    DymiumError,
    HttpError,
    InvalidResponseError,
    KeystoreError,
)
from .grants import password_grant, refresh_token_grant
from .keystore import CredentialKey, Keystore
from .opencode import OpenCodeSync
from .state import Authenticated, Authenticating, Failed, Idle, TokenState, Verifying
from .tokens import STATIC_KEY_LIFETIME, TokenFile, TokenResponse
from .verifier import EndpointVerifier

logger = logging.getLogger(__name__)

# Refresh grant statuses that mean the refresh token itself is dead
INVALID_REFRESH_STATUSES = (400, 401)

_SECRET_FIELDS = (
    (CredentialKey.CLIENT_SECRET, "client_secret"),
    (CredentialKey.PASSWORD, "password"),
    (CredentialKey.REFRESH_TOKEN, "refresh_token"),
)


class TokenManager:
    """Drives authentication and owns the token state.

    Usage:
        manager = TokenManager()

        if manager.has_credentials():
            await manager.start_or_refresh()

        if manager.needs_refresh_loop():
            await manager.refresh_tick()
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        token_file: TokenFile | None = None,
        sync: OpenCodeSync | None = None,
        keystore: Keystore | None = None,
        verifier: EndpointVerifier | None = None,
        http_client: httpx.AsyncClient | None = None,
        on_state_change: Callable[[TokenState], None] | None = None,
    ):
        """Initialize the manager.

        Args:
            config: Configuration (loaded from disk when omitted)
            token_file: Credential artifact
            sync: OpenCode document synchronizer
            keystore: OS keyring store for secrets
            verifier: LLM endpoint verifier
            http_client: Optional HTTP client for grant requests
            on_state_change: Called with every new state
        """
        self.config = config or AppConfig.load()
        self.token_file = token_file or TokenFile()
        self.sync = sync or OpenCodeSync(token_file=self.token_file)
        self.keystore = keystore or Keystore()
        self.verifier = verifier or EndpointVerifier()
        self._http_client = http_client
        self._on_state_change = on_state_change
        self._state: TokenState = Idle()
        self.last_refresh: datetime | None = None

        self._hydrate_secrets()

    # State

    @property
    def state(self) -> TokenState:
        return self._state

    def _set_state(self, state: TokenState) -> None:
        self._state = state
        logger.debug(f"Token state -> {state.name}")
        if self._on_state_change:
            self._on_state_change(state)

    def needs_refresh_loop(self) -> bool:
        """True only in OAuth mode with a usable token."""
        return self.config.is_oauth_mode() and isinstance(self._state, Authenticated)

    def refresh_interval_seconds(self) -> int:
        return self.config.refresh_interval_seconds

    def has_credentials(self) -> bool:
        return self.config.has_credentials()

    def reload_config(self) -> None:
        """Re-read the configuration from disk."""
        self.config = AppConfig.load(self.config.path)
        self._hydrate_secrets()

    # Keystore (best effort)

    def _hydrate_secrets(self) -> None:
        """Fill OAuth secrets missing from the config from the keystore."""
        if not self.config.is_oauth_mode():
            return
        for key, attr in _SECRET_FIELDS:
            if getattr(self.config, attr):
                continue
            try:
                value = self.keystore.load(key)
            except KeystoreError as e:
                logger.debug(f"Keystore unavailable for {key.value}: {e}")
                return
            if value:
                setattr(self.config, attr, value)
                logger.debug(f"Loaded {key.value} from keystore")

    def _keystore_save(self, key: CredentialKey, value: str | None) -> None:
        if not value:
            return
        try:
            self.keystore.save(key, value)
        except KeystoreError as e:
            logger.warning(f"Failed to save {key.value} to keystore: {e}")

    def _keystore_delete(self, *keys: CredentialKey) -> None:
        for key in keys:
            try:
                self.keystore.delete(key)
            except KeystoreError as e:
                logger.warning(f"Failed to delete {key.value} from keystore: {e}")

    # Authentication

    async def start_or_refresh(self) -> TokenState:
        """Authenticate with the flow for the configured mode.

        Always ends in Authenticated or Failed.

        Returns:
            The Authenticated state

        Raises:
            DymiumError: After the state has been set to Failed
        """
        try:
            await self._authenticate()
        except DymiumError as e:
            logger.error(f"Authentication failed: {e}")
            self._set_state(Failed.from_error(e))
            raise
        except Exception as e:
            logger.exception(f"Unexpected error during authentication: {e}")
            self._set_state(Failed.from_error(e))
            raise
        return self._state

    async def manual_refresh(self) -> TokenState:
        """Explicit user-requested refresh. Same contract as start_or_refresh."""
        logger.info("Manual refresh requested")
        return await self.start_or_refresh()

    async def refresh_tick(self) -> TokenState:
        """Scheduled refresh.

        A failed attempt keeps a still-valid Authenticated state in place,
        and puts its token back in the artifact and auth record if a rejected
        replacement was already written. Only once the current token has
        expired does the state become Failed.

        Raises:
            DymiumError: If the refresh attempt failed
        """
        previous = self._state
        try:
            await self._authenticate()
        except Exception as e:
            if not isinstance(e, DymiumError):
                logger.exception(f"Unexpected error during scheduled refresh: {e}")
            if isinstance(previous, Authenticated) and not previous.is_expired():
                logger.warning(
                    f"Scheduled refresh failed, keeping current token until "
                    f"{previous.expires_at.isoformat()}: {e}"
                )
                self._restore_token(previous.token)
                self._set_state(previous)
            else:
                logger.error(f"Scheduled refresh failed and token has expired: {e}")
                self._set_state(Failed.from_error(e))
            raise
        return self._state

    def _restore_token(self, token: str) -> None:
        """Write a kept token back over a rejected replacement."""
        if self.token_file.read() == token:
            return
        logger.warning("Restoring previous token to token file and OpenCode config")
        try:
            self.token_file.write(token)
            self.sync.ensure_provider_configured(self.config)
        except DymiumError as e:
            logger.error(f"Failed to restore previous token; token file no longer matches state: {e}")

    async def _authenticate(self) -> None:
        if self.config.is_static_key_mode():
            await self._authenticate_static_key()
        else:
            await self._authenticate_oauth()

    async def _authenticate_static_key(self) -> None:
        api_key = self.config.static_key
        if not api_key:
            raise ConfigError("No static API key configured")

        self._set_state(Authenticating())

        self.token_file.write(api_key)
        logger.info("Static API key written to token file")

        self._sync_consumer()

        self._set_state(Verifying())
        await self.verifier.verify(api_key, self.config)

        now = datetime.now(timezone.utc)
        self._set_state(Authenticated(token=api_key, expires_at=now + STATIC_KEY_LIFETIME))
        self.last_refresh = now
        logger.info("Static API key verified and authenticated")

    async def _authenticate_oauth(self) -> None:
        self._set_state(Authenticating())

        response: TokenResponse | None = None
        refresh_token = self.config.refresh_token

        if refresh_token:
            logger.info("Attempting refresh token grant...")
            try:
                response = await refresh_token_grant(self.config, refresh_token, self._http_client)
                logger.info(f"Refresh token grant succeeded, token expires in {response.expires_in}s")
            except AuthFailedError as e:
                logger.warning(f"Refresh token grant failed with status {e.status}")
                if e.status in INVALID_REFRESH_STATUSES:
                    self._invalidate_refresh_token()
                logger.info("Falling back to password grant...")
            except (HttpError, InvalidResponseError) as e:
                # The refresh token may still be valid
                logger.warning(f"Refresh token grant failed: {e}")
                logger.info("Falling back to password grant...")
        else:
            logger.info("No refresh token found, using password grant")

        if response is None:
            response = await password_grant(self.config, self._http_client)
            logger.info(f"Password grant succeeded, token expires in {response.expires_in}s")

        await self._handle_successful_auth(response)

    def _invalidate_refresh_token(self) -> None:
        logger.info("Clearing invalid refresh token")
        self.config.refresh_token = None
        try:
            self.config.save()
        except ConfigError as e:
            logger.error(f"Failed to persist refresh token removal: {e}")
        self._keystore_delete(CredentialKey.REFRESH_TOKEN)

    async def _handle_successful_auth(self, response: TokenResponse) -> None:
        expires_at = response.expires_at

        if response.has_refresh_token():
            self.config.refresh_token = response.refresh_token
            try:
                self.config.save()
            except ConfigError as e:
                logger.error(f"Failed to save refresh token: {e}")
            self._keystore_save(CredentialKey.REFRESH_TOKEN, response.refresh_token)
            if response.refresh_expires_in is not None:
                logger.info(f"New refresh token saved, expires in {response.refresh_expires_in}s")

        self.token_file.write(response.access_token)
        logger.info("Access token written to token file")

        self._sync_consumer()
        logger.info(f"Updated OpenCode config with OAuth token, expires at {expires_at.isoformat()}")

        self._set_state(Verifying())
        await self.verifier.verify(response.access_token, self.config)

        self._set_state(Authenticated(token=response.access_token, expires_at=expires_at))
        self.last_refresh = datetime.now(timezone.utc)

    def _sync_consumer(self) -> None:
        try:
            self.sync.ensure_provider_configured(self.config)
        except ConfigSyncError as e:
            raise ConfigSyncError(f"Failed to update OpenCode config: {e}") from e

    # Setup and logout

    def _clear_cached_credentials(self) -> None:
        """Remove the token file and auth record so a stale credential is never used."""
        self.token_file.delete()
        try:
            self.sync.clear_auth()
        except ConfigSyncError as e:
            logger.error(f"Failed to clear OpenCode auth record: {e}")

    def save_oauth_setup(
        self,
        issuer_url: str,
        realm: str,
        client_id: str,
        username: str,
        llm_endpoint: str,
        app: str | None,
        client_secret: str,
        password: str,
    ) -> None:
        """Switch to OAuth mode with new parameters. Does not authenticate.

        Raises:
            ConfigError: If the configuration cannot be saved
        """
        self._clear_cached_credentials()

        self.config.auth_mode = AuthMode.OAUTH
        self.config.issuer_url = issuer_url
        self.config.realm = realm
        self.config.client_id = client_id
        self.config.username = username
        self.config.llm_endpoint = llm_endpoint
        self.config.app = app
        self.config.client_secret = client_secret
        self.config.password = password
        self.config.refresh_token = None
        self.config.static_key = None

        self.config.save()

        self._keystore_delete(CredentialKey.REFRESH_TOKEN)
        self._keystore_save(CredentialKey.CLIENT_SECRET, client_secret)
        self._keystore_save(CredentialKey.PASSWORD, password)
        logger.info("OAuth configuration saved")

    def save_static_key_setup(
        self,
        llm_endpoint: str,
        static_key: str,
        app: str | None = None,
    ) -> None:
        """Switch to static-key mode. Does not authenticate.

        Raises:
            ConfigError: If the configuration cannot be saved
        """
        self._clear_cached_credentials()

        self.config.auth_mode = AuthMode.STATIC_KEY
        self.config.llm_endpoint = llm_endpoint
        self.config.static_key = static_key
        self.config.app = app
        self.config.client_secret = None
        self.config.password = None
        self.config.refresh_token = None

        self.config.save()

        self._keystore_delete(
            CredentialKey.CLIENT_SECRET, CredentialKey.PASSWORD, CredentialKey.REFRESH_TOKEN
        )
        logger.info("Static API key configuration saved")

    def log_out(self) -> None:
        """Clear every secret and cached credential and return to Idle.

        Idempotent: artifacts that are already gone are skipped.

        Raises:
            ConfigError: If the cleared configuration cannot be saved
        """
        self.config.client_secret = None
        self.config.password = None
        self.config.refresh_token = None
        self.config.static_key = None

        self._keystore_delete(
            CredentialKey.CLIENT_SECRET, CredentialKey.PASSWORD, CredentialKey.REFRESH_TOKEN
        )
        self._clear_cached_credentials()

        self._set_state(Idle())
        self.last_refresh = None

        self.config.save()
        logger.info("Logged out - all credentials cleared")
