"""Shared access to the TokenManager.

One ``asyncio.Lock`` serializes every operation on the single manager
instance, so grants, manual refreshes, scheduled refreshes and
reconfiguration never interleave. A manual refresh issued while a scheduled
one is in flight simply waits for the lock.
"""

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from .config import AppConfig
from .errors import DymiumError
from .manager import TokenManager
from .state import TokenState, state_to_dict

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a caller-facing operation.

    Attributes:
        success: Whether the operation succeeded
        state: Token state after the operation
        error: Error message on failure
        category: User-facing failure category on failure
        exception: The underlying error, for callers that re-raise
    """

    success: bool
    state: TokenState
    error: str | None = None
    category: str | None = None
    exception: DymiumError | None = field(default=None, repr=False, compare=False)

    @classmethod
    def ok(cls, state: TokenState) -> "CommandResult":
        return cls(success=True, state=state)

    @classmethod
    def failed(cls, state: TokenState, error: DymiumError) -> "CommandResult":
        return cls(
            success=False,
            state=state,
            error=str(error),
            category=error.category,
            exception=error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "success": self.success,
            "state": state_to_dict(self.state),
            "error": self.error,
            "category": self.category,
        }


class ProviderService:
    """Caller-facing operations over one shared TokenManager."""

    def __init__(self, manager: TokenManager | None = None):
        self._manager = manager or TokenManager()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[TokenManager]:
        """Hold exclusive access to the manager."""
        async with self._lock:
            yield self._manager

    async def get_state(self) -> TokenState:
        async with self.locked() as manager:
            return manager.state

    async def get_config(self) -> AppConfig:
        """Get a copy of the current configuration."""
        async with self.locked() as manager:
            return dataclasses.replace(manager.config)

    async def has_credentials(self) -> bool:
        async with self.locked() as manager:
            return manager.has_credentials()

    async def save_oauth_setup(
        self,
        issuer_url: str,
        realm: str,
        client_id: str,
        username: str,
        llm_endpoint: str,
        app: str | None,
        client_secret: str,
        password: str,
    ) -> CommandResult:
        async with self.locked() as manager:
            try:
                manager.save_oauth_setup(
                    issuer_url=issuer_url,
                    realm=realm,
                    client_id=client_id,
                    username=username,
                    llm_endpoint=llm_endpoint,
                    app=app,
                    client_secret=client_secret,
                    password=password,
                )
            except DymiumError as e:
                return CommandResult.failed(manager.state, e)
            return CommandResult.ok(manager.state)

    async def save_static_key_setup(
        self,
        llm_endpoint: str,
        static_key: str,
        app: str | None = None,
    ) -> CommandResult:
        async with self.locked() as manager:
            try:
                manager.save_static_key_setup(llm_endpoint, static_key, app)
            except DymiumError as e:
                return CommandResult.failed(manager.state, e)
            return CommandResult.ok(manager.state)

    async def manual_refresh(self) -> CommandResult:
        async with self.locked() as manager:
            try:
                await manager.manual_refresh()
            except DymiumError as e:
                return CommandResult.failed(manager.state, e)
            return CommandResult.ok(manager.state)

    async def start_refresh_loop(self) -> CommandResult:
        """Run the initial authentication for the configured mode."""
        async with self.locked() as manager:
            try:
                await manager.start_or_refresh()
            except DymiumError as e:
                return CommandResult.failed(manager.state, e)
            return CommandResult.ok(manager.state)

    async def log_out(self) -> CommandResult:
        async with self.locked() as manager:
            try:
                manager.log_out()
            except DymiumError as e:
                return CommandResult.failed(manager.state, e)
            return CommandResult.ok(manager.state)

    async def sync_consumer_config(self) -> CommandResult:
        """Run the OpenCode synchronizer once."""
        async with self.locked() as manager:
            try:
                manager.sync.ensure_provider_configured(manager.config)
            except DymiumError as e:
                return CommandResult.failed(manager.state, e)
            return CommandResult.ok(manager.state)

    async def startup(self) -> CommandResult:
        """Sync OpenCode's documents, then authenticate if credentials exist.

        A sync failure here is logged; the authentication attempt still runs
        and syncs again on its own.
        """
        async with self.locked() as manager:
            try:
                manager.sync.ensure_provider_configured(manager.config)
            except DymiumError as e:
                logger.warning(f"Failed to sync OpenCode config on startup: {e}")

            if not manager.has_credentials():
                logger.info("No credentials configured, skipping initial authentication")
                return CommandResult.ok(manager.state)

            logger.info("Starting initial authentication...")
            try:
                await manager.start_or_refresh()
            except DymiumError as e:
                return CommandResult.failed(manager.state, e)
            return CommandResult.ok(manager.state)
