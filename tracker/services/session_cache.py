"""
Session snapshot cache.

Size-one, in-memory cache of the last searched player so the search screen
can be restored without a refetch. Entries expire after one hour.
"""

import time
from typing import Callable, NamedTuple, Optional

from tracker.constants import CacheConstants
from tracker.data_models.player import PlayerSnapshot
from tracker.utils.logger import setup_logger

logger = setup_logger(__name__)


class _Entry(NamedTuple):
    snapshot: PlayerSnapshot
    stored_at: float


class SessionSnapshotCache:
    """Single-slot TTL cache for the last searched player."""
    
    def __init__(self, ttl: float = CacheConstants.SESSION_SNAPSHOT_TTL, clock: Callable[[], float] = time.time):
        self._ttl = ttl
        self._clock = clock
        # Replaced as a whole, never mutated in place
        self._entry: Optional[_Entry] = None
    
    @property
    def ttl(self) -> float:
        return self._ttl
    
    def put(self, snapshot: PlayerSnapshot):
        """Store a snapshot, replacing any previous one."""
        self._entry = _Entry(snapshot, self._clock())
        logger.debug(f"Cached last searched player {snapshot.tag}")
    
    def get(self) -> Optional[PlayerSnapshot]:
        """Return the cached snapshot if it is still fresh."""
        entry = self._entry
        if entry is None:
            return None
        
        if self._clock() - entry.stored_at >= self._ttl:
            logger.debug(f"Last searched player {entry.snapshot.tag} expired")
            # Only clear if nobody replaced the entry meanwhile
            if self._entry is entry:
                self._entry = None
            return None
        
        return entry.snapshot
    
    def peek_age(self) -> Optional[float]:
        """Seconds since the current entry was stored, or None."""
        entry = self._entry
        if entry is None:
            return None
        return self._clock() - entry.stored_at
    
    def clear(self):
        """Explicitly drop the cached snapshot."""
        self._entry = None
    
    def clear_if_tag(self, tag: str) -> bool:
        """Drop the cached snapshot if it belongs to the given player."""
        entry = self._entry
        if entry is not None and entry.snapshot.tag == tag:
            self._entry = None
            return True
        return False
