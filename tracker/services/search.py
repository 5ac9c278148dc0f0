"""
Player search service.

Looks up any player by tag and keeps the result in the session cache so the
search screen can be restored without a refetch.
"""

import logging
from typing import Optional

from tracker.config import Config
from tracker.data_models.player import PlayerSnapshot
from tracker.services.remote_fetcher import RemoteFetcher
from tracker.services.session_cache import SessionSnapshotCache
from tracker.utils.exceptions import SearchError, TrackerException
from tracker.utils.tags import normalize_tag
from tracker.utils.timeouts import bounded_fetch

logger = logging.getLogger(__name__)


class PlayerSearchService:
    """Search flow backed by the remote fetcher and the session cache."""

    def __init__(self, fetcher: RemoteFetcher, session_cache: SessionSnapshotCache, fetch_timeout: float = None):
        self.fetcher = fetcher
        self.session_cache = session_cache
        self.fetch_timeout = fetch_timeout or Config.FETCH_TIMEOUT_SECONDS

    async def search(self, raw_tag: str) -> PlayerSnapshot:
        """
        Fetch a player by tag and remember it as the last searched player.

        Raises:
            SearchError: cause invalid_tag, not_found, timeout, cancelled or network
        """
        try:
            tag = normalize_tag(raw_tag)
            snapshot = await bounded_fetch(self.fetcher.fetch(tag), self.fetch_timeout)
        except TrackerException as e:
            logger.info(f"Search for {raw_tag!r} failed: {e}")
            raise SearchError.from_error(e) from e

        self.session_cache.put(snapshot)
        return snapshot

    async def refresh_current(self) -> Optional[PlayerSnapshot]:
        """Re-fetch the cached player, or return None if nothing is cached."""
        current = self.session_cache.get()
        if current is None:
            return None
        return await self.search(current.tag)

    def restore(self) -> Optional[PlayerSnapshot]:
        """Last searched player, if still fresh."""
        return self.session_cache.get()

    def reset(self):
        """Return to a blank search state."""
        self.session_cache.clear()
