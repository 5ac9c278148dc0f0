import argparse
import asyncio
import logging
import sys
import traceback
from typing import Optional

from tracker.config import Config
from tracker.data_models.player import PlayerSnapshot
from tracker.database.database import Database
from tracker.services.auto_refresh import AutoRefreshService
from tracker.services.event_bus import EventBus
from tracker.services.player_store import PlayerRecordStore
from tracker.services.remote_fetcher import HttpRemoteFetcher, RemoteFetcher
from tracker.services.reset_scheduler import DailyResetScheduler
from tracker.services.search import PlayerSearchService
from tracker.services.session_cache import SessionSnapshotCache
from tracker.services.settings import SettingsService
from tracker.services.sync_coordinator import ProfileSyncCoordinator
from tracker.utils.exceptions import TrackerException
from tracker.utils.logger import setup_logger

class TrackerApp:
    """Wires the sync core together with explicit dependencies."""

    def __init__(self, database_url: str = None, fetcher: Optional[RemoteFetcher] = None):
        self.logger = setup_logger(__name__)
        self.db = Database(database_url)
        self.fetcher = fetcher
        self.event_bus = EventBus()
        self.session_cache = SessionSnapshotCache(ttl=Config.SESSION_CACHE_TTL_SECONDS)
        self.scheduler = DailyResetScheduler(Config.RESET_HOUR_UTC)
        self.settings: Optional[SettingsService] = None
        self.store: Optional[PlayerRecordStore] = None
        self.coordinator: Optional[ProfileSyncCoordinator] = None
        self.search: Optional[PlayerSearchService] = None
        self.auto_refresh: Optional[AutoRefreshService] = None

    async def setup(self):
        """Initialize storage and services"""
        self.logger.info("Setting up tracker...")

        await self.db.initialize()

        self.settings = SettingsService(self.db.session_factory)
        await self.settings.load_all()
        self.store = PlayerRecordStore(self.db.session_factory)

        if self.fetcher is None:
            self.fetcher = HttpRemoteFetcher()

        self.coordinator = ProfileSyncCoordinator(
            store=self.store,
            fetcher=self.fetcher,
            settings=self.settings,
            session_cache=self.session_cache,
            event_bus=self.event_bus,
            scheduler=self.scheduler,
        )
        self.search = PlayerSearchService(self.fetcher, self.session_cache)
        self.auto_refresh = AutoRefreshService(self.coordinator, self.settings, self.scheduler)

        if self.settings.auto_refresh_enabled():
            self.auto_refresh.start()

        self.logger.info("Tracker setup complete!")

    async def close(self):
        """Cleanup when shutting down"""
        self.logger.info("Shutting down tracker...")

        if self.auto_refresh:
            await self.auto_refresh.stop()

        await self.event_bus.drain()

        if isinstance(self.fetcher, HttpRemoteFetcher):
            await self.fetcher.aclose()

        await self.db.close()

def format_snapshot(snapshot: PlayerSnapshot) -> str:
    lines = [
        f"{snapshot.name} ({snapshot.tag})",
        f"  Town Hall {snapshot.town_hall_level} | XP level {snapshot.exp_level}",
        f"  Trophies {snapshot.trophies} (best {snapshot.best_trophies}) | War stars {snapshot.war_stars}",
    ]
    if snapshot.clan:
        lines.append(f"  Clan: {snapshot.clan.name} ({snapshot.clan.tag})")
    if snapshot.league:
        lines.append(f"  League: {snapshot.league.name}")
    if snapshot.troops:
        lines.append(f"  Troops: {len(snapshot.troops)} | Heroes: {len(snapshot.heroes or [])}")
    return '\n'.join(lines)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='tracker', description="Player profile tracker")
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('show', help="Show my profile (cached, then reconciled)")
    claim = subparsers.add_parser('claim', help="Save a player as my profile")
    claim.add_argument('tag')
    subparsers.add_parser('refresh', help="Refresh my profile from the server")
    subparsers.add_parser('remove', help="Remove my profile")
    search = subparsers.add_parser('search', help="Look up any player")
    search.add_argument('tag')
    subparsers.add_parser('reset', help="Delete all local data")
    return parser

async def run_command(app: TrackerApp, args: argparse.Namespace) -> int:
    coordinator = app.coordinator

    if args.command == 'show':
        snapshot = await coordinator.load_profile()
        if snapshot is None:
            print("No profile saved. Use 'claim TAG' first.")
            return 1
        print(format_snapshot(snapshot))
        print(f"Next reset: {app.scheduler.format_next_reset(app.settings.display_timezone())}")
    elif args.command == 'claim':
        snapshot = await coordinator.save_as_my_profile(args.tag)
        print(f"✅ Saved {snapshot.name} ({snapshot.tag}) as your profile")
    elif args.command == 'refresh':
        # refresh_profile does the fetch, so only the saved record is needed here
        await coordinator.load_profile(reconcile=False)
        snapshot = await coordinator.refresh_profile()
        print(format_snapshot(snapshot))
    elif args.command == 'remove':
        count = await coordinator.remove_my_profile()
        print(f"Removed {count} profile record(s)")
    elif args.command == 'search':
        snapshot = await app.search.search(args.tag)
        print(format_snapshot(snapshot))
    elif args.command == 'reset':
        await coordinator.reset_all_data()
        print("All local data deleted")
    return 0

async def main(argv=None) -> int:
    """Main entry point"""
    Config.validate()
    args = build_parser().parse_args(argv)

    app = TrackerApp()
    try:
        await app.setup()
        return await run_command(app, args)
    except TrackerException as e:
        print(e.user_message)
        return 1
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
        return 1
    finally:
        await app.close()

def cli():
    sys.exit(asyncio.run(main()))

if __name__ == "__main__":
    cli()
