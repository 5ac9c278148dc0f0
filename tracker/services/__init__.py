"""
Services package for the profile tracker.

Storage-backed services share BaseService session handling; the sync
coordinator composes them behind explicit dependencies.
"""

from .base import BaseService
from .event_bus import EventBus, ProfileEvent
from .player_store import PlayerRecordStore
from .remote_fetcher import HttpRemoteFetcher, RemoteFetcher
from .reset_scheduler import DailyResetScheduler
from .session_cache import SessionSnapshotCache
from .settings import SettingsService
from .sync_coordinator import LoadState, ProfileSyncCoordinator

__all__ = [
    'BaseService',
    'EventBus',
    'ProfileEvent',
    'PlayerRecordStore',
    'HttpRemoteFetcher',
    'RemoteFetcher',
    'DailyResetScheduler',
    'SessionSnapshotCache',
    'SettingsService',
    'LoadState',
    'ProfileSyncCoordinator',
]
