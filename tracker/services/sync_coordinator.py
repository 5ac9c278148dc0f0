"""
Profile sync coordinator.

Orchestrates the "my profile" slot: decides when to serve cached data and
when to go to the network, merges partial responses with what is already
known, persists outcomes and keeps at most one refresh in flight.

Operations:
- load_profile(): cached record first for a fast paint, then one bounded
  background reconcile. Network failures are invisible here.
- refresh_profile(): user-triggered, always hits the network, fails loudly.
- save_as_my_profile(tag): full fetch, then claim the record as my profile.
- remove_my_profile(): delete the claimed record.
"""

import asyncio
from enum import Enum
from typing import Callable, List, Optional

from tracker.config import Config
from tracker.data_models.player import PlayerRankings, PlayerSnapshot
from tracker.operations.merge import merge_snapshots
from tracker.services.event_bus import EventBus, ProfileEvent
from tracker.services.player_store import PlayerRecordStore, snapshot_from_record
from tracker.services.remote_fetcher import RemoteFetcher
from tracker.services.reset_scheduler import DailyResetScheduler
from tracker.services.session_cache import SessionSnapshotCache
from tracker.services.settings import SettingsService
from tracker.utils.exceptions import (
    DecodeError, ErrorCause, NoProfileDataError, RefreshError, RefreshInProgressError,
    RemoveError, SaveError, StoreError, TrackerException
)
from tracker.utils.logger import setup_logger
from tracker.utils.tags import normalize_tag
from tracker.utils.timeouts import bounded_fetch

logger = setup_logger(__name__)


class LoadState(Enum):
    IDLE = "idle"
    CHECKING_EXISTENCE = "checking_existence"
    NOT_FOUND = "not_found"
    LOADING_CACHED = "loading_cached"
    RECONCILING = "reconciling"
    READY = "ready"


SnapshotListener = Callable[[Optional[PlayerSnapshot]], None]


class ProfileSyncCoordinator:
    """Owner of the single "my profile" slot."""

    def __init__(
        self,
        store: PlayerRecordStore,
        fetcher: RemoteFetcher,
        settings: SettingsService,
        session_cache: SessionSnapshotCache,
        event_bus: EventBus,
        scheduler: Optional[DailyResetScheduler] = None,
        fetch_timeout: float = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.settings = settings
        self.session_cache = session_cache
        self.event_bus = event_bus
        self.scheduler = scheduler or DailyResetScheduler(Config.RESET_HOUR_UTC)
        self.fetch_timeout = fetch_timeout or Config.FETCH_TIMEOUT_SECONDS

        self.state = LoadState.IDLE
        self.current_snapshot: Optional[PlayerSnapshot] = None
        self.rankings: Optional[PlayerRankings] = None
        self.last_error: Optional[TrackerException] = None

        self._refresh_in_progress = False
        # Bumped whenever the claimed profile changes hands, so in-flight
        # fetches started for a previous owner are discarded
        self._generation = 0
        self._listeners: List[SnapshotListener] = []

    # Observers

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_in_progress

    def add_snapshot_listener(self, listener: SnapshotListener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_snapshot_listener(self, listener: SnapshotListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, snapshot: Optional[PlayerSnapshot]):
        self.current_snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener {listener!r} failed: {e}", exc_info=True)

    # Helpers

    async def _fetch(self, tag: str) -> PlayerSnapshot:
        return await bounded_fetch(self.fetcher.fetch(tag), self.fetch_timeout)

    async def _load_rankings(self, snapshot: PlayerSnapshot):
        """Best-effort rankings lookup for legend league players."""
        if not snapshot.is_legend_league:
            self.rankings = None
            return

        try:
            self.rankings = await bounded_fetch(
                self.fetcher.fetch_rankings(snapshot.tag), self.fetch_timeout
            )
        except TrackerException as e:
            logger.info(f"Rankings for {snapshot.tag} unavailable: {e}")
            self.rankings = PlayerRankings.unranked(snapshot.tag)

    async def _sync_claimed_flag(self, claimed: bool):
        try:
            await self.settings.set_claimed_profile(claimed)
        except StoreError as e:
            logger.warning(f"Could not update claimed profile flag: {e}")

    def _clear_profile(self):
        self.rankings = None
        self._publish(None)

    # Operations

    async def load_profile(self, reconcile: bool = True) -> Optional[PlayerSnapshot]:
        """
        Load my profile for display.

        The cached record is published immediately, then one bounded fetch
        reconciles it with the server unless reconcile is False. Fetch failures keep the cached data and
        are only logged. Store failures are logged and reported as no profile.

        Returns:
            The current snapshot, or None when no profile is claimed
        """
        self.state = LoadState.CHECKING_EXISTENCE
        generation = self._generation

        try:
            exists = await self.store.has_my_profile()
        except StoreError as e:
            logger.error(f"Could not check for a saved profile: {e}")
            self.state = LoadState.NOT_FOUND
            return None

        if not exists:
            logger.debug("No saved profile")
            self.state = LoadState.NOT_FOUND
            self._clear_profile()
            await self._sync_claimed_flag(False)
            return None

        self.state = LoadState.LOADING_CACHED
        try:
            cached = await self.store.load_my_snapshot()
        except StoreError as e:
            logger.error(f"Could not load saved profile: {e}")
            cached = None

        if cached is None:
            self.state = LoadState.NOT_FOUND
            return None

        self._publish(cached)
        await self._sync_claimed_flag(True)

        fresh = None
        if reconcile:
            self.state = LoadState.RECONCILING
            try:
                fresh = await self._fetch(cached.tag)
            except TrackerException as e:
                logger.info(f"Keeping cached profile {cached.tag}, refresh failed: {e}")

        if fresh is not None:
            if generation != self._generation or self.current_snapshot is not cached:
                # Someone published newer data while we were fetching
                logger.debug(f"Discarding background fetch for {cached.tag}, profile changed meanwhile")
            else:
                self._publish(merge_snapshots(cached, fresh))
                try:
                    await self.store.upsert_as_my_profile(fresh)
                except StoreError as e:
                    logger.error(f"Could not persist reconciled profile {cached.tag}: {e}")

        if generation != self._generation and self.current_snapshot is None:
            # Removed or reset while reconciling; leave the state it set
            return None

        if self.current_snapshot is not None:
            await self._load_rankings(self.current_snapshot)

        self.state = LoadState.READY
        return self.current_snapshot

    async def refresh_profile(self) -> Optional[PlayerSnapshot]:
        """
        Refresh the loaded profile from the network.

        When the profile is saved, removed or reset while the fetch runs, the
        fetched data is dropped and whatever is current afterwards is returned.

        Raises:
            NoProfileDataError: No profile is loaded
            RefreshInProgressError: Another refresh is still running
            RefreshError: The refresh failed; cause is timeout, cancelled,
                network or store
        """
        snapshot = self.current_snapshot
        if snapshot is None:
            raise NoProfileDataError()
        if self._refresh_in_progress:
            raise RefreshInProgressError()

        self._refresh_in_progress = True
        generation = self._generation
        self.last_error = None
        try:
            try:
                fresh = await self._fetch(snapshot.tag)
            except TrackerException as e:
                error = RefreshError.from_error(e)
                self.last_error = error
                logger.warning(f"Refresh of {snapshot.tag} failed: {e}")
                raise error from e
            except asyncio.CancelledError:
                self.last_error = RefreshError(ErrorCause.CANCELLED, "refresh was cancelled")
                logger.info(f"Refresh of {snapshot.tag} cancelled")
                raise

            if generation != self._generation:
                logger.info(f"Profile changed during refresh of {snapshot.tag}, discarding result")
                return self.current_snapshot

            merged = merge_snapshots(self.current_snapshot or snapshot, fresh)
            self._publish(merged)

            try:
                await self.store.upsert_as_my_profile(fresh)
            except StoreError as e:
                error = RefreshError.from_error(e)
                self.last_error = error
                raise error from e

            try:
                await self.settings.mark_refreshed(self.scheduler.now())
            except StoreError as e:
                logger.warning(f"Could not record refresh time: {e}")

            await self._load_rankings(merged)
            self.event_bus.publish(ProfileEvent.PROFILE_UPDATED)
            logger.info(f"Refreshed profile {merged.tag}")
            return merged
        finally:
            self._refresh_in_progress = False

    async def save_as_my_profile(self, tag: str) -> PlayerSnapshot:
        """
        Claim a player as my profile.

        A full fetch is always performed first because a snapshot seen in
        search may lack unit collections. The store is not touched when the
        fetch fails.

        Raises:
            SaveError: cause invalid_tag, not_found, timeout, cancelled,
                network or store
        """
        try:
            tag = normalize_tag(tag)
        except TrackerException as e:
            raise SaveError.from_error(e) from e

        self._generation += 1
        try:
            fresh = await self._fetch(tag)
        except TrackerException as e:
            logger.warning(f"Could not fetch {tag} to save as profile: {e}")
            raise SaveError.from_error(e) from e

        try:
            record = await self.store.upsert_as_my_profile(fresh)
            saved = snapshot_from_record(record)
        except (StoreError, DecodeError) as e:
            raise SaveError.from_error(e) from e
        finally:
            self._generation += 1

        await self._sync_claimed_flag(True)
        self.session_cache.clear_if_tag(tag)

        self._publish(saved)
        await self._load_rankings(saved)
        self.state = LoadState.READY
        self.event_bus.publish(ProfileEvent.PROFILE_UPDATED)
        logger.info(f"Saved {tag} as my profile")
        return saved

    async def remove_my_profile(self) -> int:
        """
        Remove the claimed profile.

        Returns:
            Number of records deleted

        Raises:
            RemoveError: The store could not delete the record
        """
        self._generation += 1
        try:
            count = await self.store.remove_my_profile()
        except StoreError as e:
            raise RemoveError.from_error(e) from e
        finally:
            self._generation += 1

        self._clear_profile()
        self.state = LoadState.NOT_FOUND
        await self._sync_claimed_flag(False)
        self.event_bus.publish(ProfileEvent.PROFILE_REMOVED)
        return count

    def last_searched(self) -> Optional[PlayerSnapshot]:
        """Last searched player, if still fresh."""
        return self.session_cache.get()

    async def reset_all_data(self):
        """Wipe every record, all settings and the session cache."""
        self._generation += 1
        try:
            await self.store.clear_all()
            await self.settings.reset()
        except StoreError as e:
            raise RemoveError.from_error(e) from e
        finally:
            self._generation += 1

        self.session_cache.clear()
        self._clear_profile()
        self.last_error = None
        self.state = LoadState.NOT_FOUND
        self.event_bus.publish(ProfileEvent.PROFILE_REMOVED)
        logger.info("All local data reset")
