"""Periodic OAuth token refresh.

The scheduler never holds the manager lock while sleeping, so manual
refreshes and reconfiguration are never blocked by its wait. While OAuth is
not active or nothing is authenticated yet it parks, re-checking every few
seconds.
"""

import asyncio
import logging

from .errors import DymiumError
from .service import ProviderService

logger = logging.getLogger(__name__)

# How often a parked scheduler re-checks whether refreshing is needed (seconds)
POLL_INTERVAL = 5.0


class RefreshScheduler:
    """Cooperative refresh loop over a ProviderService.

    Usage:
        scheduler = RefreshScheduler(service)
        task = asyncio.create_task(scheduler.run())
        ...
        scheduler.stop()
        await task
    """

    def __init__(self, service: ProviderService, poll_interval: float = POLL_INTERVAL):
        self._service = service
        self.poll_interval = poll_interval
        self._stopped = asyncio.Event()

    def stop(self) -> None:
        """Ask the loop to exit at its next wait."""
        self._stopped.set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    async def _sleep(self, seconds: float) -> bool:
        """Sleep, waking early on stop. Returns True if stopped."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run_once(self) -> bool:
        """Run one iteration of the loop.

        Returns:
            True if a refresh was attempted
        """
        async with self._service.locked() as manager:
            needs_refresh = manager.needs_refresh_loop()
            interval = manager.refresh_interval_seconds()

        if not needs_refresh:
            await self._sleep(self.poll_interval)
            return False

        if await self._sleep(interval):
            return False

        async with self._service.locked() as manager:
            # State may have changed while we slept
            if not manager.needs_refresh_loop():
                logger.debug("Refresh no longer needed, skipping tick")
                return False

            try:
                await manager.refresh_tick()
            except DymiumError as e:
                logger.error(f"Periodic token refresh failed: {e}")
            else:
                logger.info("Periodic token refresh succeeded")

        return True

    async def run(self) -> None:
        """Run until stop() is called."""
        logger.info("Refresh scheduler started")
        while not self._stopped.is_set():
            await self.run_once()
        logger.info("Refresh scheduler stopped")
