import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from tracker.data_models.player import PlayerRankings, PlayerSnapshot
from tracker.database.database import Database
from tracker.services.event_bus import EventBus, ProfileEvent
from tracker.services.player_store import PlayerRecordStore
from tracker.services.reset_scheduler import DailyResetScheduler
from tracker.services.session_cache import SessionSnapshotCache
from tracker.services.settings import SettingsService
from tracker.services.sync_coordinator import ProfileSyncCoordinator
from tracker.utils.exceptions import PlayerNotFoundError


def player_payload(tag: str = '#2PP', name: str = 'Chief', **overrides) -> dict:
    """A complete player payload in the remote service's shape."""
    payload = {
        'tag': tag,
        'name': name,
        'expLevel': 200,
        'trophies': 5100,
        'bestTrophies': 5600,
        'donations': 120,
        'donationsReceived': 80,
        'attackWins': 40,
        'defenseWins': 3,
        'townHallLevel': 15,
        'townHallWeaponLevel': 3,
        'warStars': 900,
        'clanCapitalContributions': 250000,
        'role': 'admin',
        'clan': {'tag': '#CLAN1', 'name': 'Raiders', 'clanLevel': 20, 'badgeUrls': {'small': 'https://img/s.png'}},
        'league': {'id': 29000022, 'name': 'Legend League', 'iconUrls': {'small': 'https://img/l.png'}},
        'troops': [
            {'name': 'Barbarian', 'level': 11, 'maxLevel': 12, 'village': 'home'},
            {'name': 'Super Barbarian', 'level': 1, 'maxLevel': 1, 'village': 'home', 'superTroopIsActive': True},
        ],
        'heroes': [{'name': 'Barbarian King', 'level': 90, 'maxLevel': 95, 'village': 'home'}],
        'spells': [{'name': 'Rage Spell', 'level': 6, 'maxLevel': 6, 'village': 'home'}],
        'heroEquipment': [{'name': 'Giant Gauntlet', 'level': 20, 'maxLevel': 27, 'village': 'home'}],
        'builderHallLevel': 10,
        'builderBaseTrophies': 4000,
        'bestBuilderBaseTrophies': 4200,
        'legendStatistics': {
            'legendTrophies': 3000,
            'currentSeason': {'trophies': 5100, 'rank': 1200},
            'bestSeason': {'id': '2024-01', 'trophies': 5700, 'rank': 300},
        },
    }
    payload.update(overrides)
    return payload


def make_snapshot(tag: str = '#2PP', name: str = 'Chief', **overrides) -> PlayerSnapshot:
    return PlayerSnapshot.from_api(player_payload(tag, name, **overrides))


def partial_snapshot(tag: str = '#2PP', name: str = 'Chief', **fields) -> PlayerSnapshot:
    """A snapshot carrying only required fields, like a search result."""
    return PlayerSnapshot(tag=tag, name=name, **fields)


class FakeFetcher:
    """
    Scripted RemoteFetcher.

    Results per tag are served in order; the last one repeats. An entry may be
    a snapshot or an exception to raise. Setting ``gate`` holds every fetch
    until the event is set.
    """

    def __init__(self):
        self.results: Dict[str, List] = {}
        self.rankings: Dict[str, PlayerRankings] = {}
        self.calls: List[str] = []
        self.ranking_calls: List[str] = []
        self.cancelled = 0
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    def script(self, tag: str, *results):
        self.results[tag] = list(results)

    async def fetch(self, tag: str) -> PlayerSnapshot:
        self.calls.append(tag)
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise

        queue = self.results.get(tag)
        if not queue:
            raise PlayerNotFoundError(tag)
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_rankings(self, tag: str) -> PlayerRankings:
        self.ranking_calls.append(tag)
        return self.rankings.get(tag, PlayerRankings.unranked(tag))


class FixedClock:
    """Mutable clock returning a fixed UTC datetime."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'tracker_test.db'}")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def store(database):
    return PlayerRecordStore(database.session_factory)


@pytest_asyncio.fixture
async def settings(database):
    service = SettingsService(database.session_factory)
    await service.load_all()
    return service


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def scheduler(clock):
    return DailyResetScheduler(5, clock=clock)


@pytest.fixture
def session_cache():
    return SessionSnapshotCache()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def coordinator(store, fetcher, settings, session_cache, event_bus, scheduler):
    return ProfileSyncCoordinator(
        store=store,
        fetcher=fetcher,
        settings=settings,
        session_cache=session_cache,
        event_bus=event_bus,
        scheduler=scheduler,
        fetch_timeout=0.5,
    )


@pytest.fixture
def events(event_bus):
    """Records every profile event published on the bus."""
    received = []
    for event in ProfileEvent:
        event_bus.subscribe(event, lambda event=event: received.append(event))
    return received
