"""
Daily auto-refresh of the claimed profile.

When enabled, a background task sleeps until the next reset boundary and then
refreshes the profile if the last refresh predates that boundary.
"""

import asyncio
import logging
from typing import Optional

from tracker.services.reset_scheduler import DailyResetScheduler
from tracker.services.settings import SettingsService
from tracker.services.sync_coordinator import ProfileSyncCoordinator
from tracker.utils.exceptions import TrackerException

logger = logging.getLogger(__name__)


class AutoRefreshService:
    """Runs the profile refresh once per daily reset."""

    def __init__(self, coordinator: ProfileSyncCoordinator, settings: SettingsService,
                 scheduler: DailyResetScheduler, min_sleep: float = 1.0):
        self.coordinator = coordinator
        self.settings = settings
        self.scheduler = scheduler
        self.min_sleep = min_sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """
        Refresh the profile if auto refresh is on and the data is stale.

        Returns:
            True if a refresh was performed successfully
        """
        if not self.settings.auto_refresh_enabled():
            return False

        if not self.scheduler.should_refresh(self.settings.last_refresh_at()):
            logger.debug("Profile already refreshed since the last reset")
            return False

        if self.coordinator.current_snapshot is None:
            # Nothing loaded yet; load_profile reconciles on its own
            await self.coordinator.load_profile()
            if self.coordinator.current_snapshot is None:
                return False

        try:
            await self.coordinator.refresh_profile()
        except TrackerException as e:
            logger.warning(f"Auto refresh failed: {e}")
            return False

        logger.info("Auto refresh completed")
        return True

    async def _loop(self):
        while True:
            delay = max(self.scheduler.seconds_until_next_reset(), self.min_sleep)
            logger.debug(f"Next auto refresh check in {delay:.0f}s")
            await asyncio.sleep(delay)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Auto refresh check failed: {e}", exc_info=True)

    def start(self):
        """Start the background loop if it is not already running."""
        if self.is_running:
            return
        self._task = asyncio.ensure_future(self._loop())
        logger.info(f"Auto refresh scheduled, next reset at {self.scheduler.next_reset_instant().isoformat()}")

    async def stop(self):
        """Stop the background loop and wait for it to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Auto refresh stopped")

    async def set_enabled(self, enabled: bool):
        """Persist the toggle and start or stop the loop accordingly."""
        await self.settings.set_auto_refresh(enabled)
        if enabled:
            self.start()
            await self.run_once()
        else:
            await self.stop()
