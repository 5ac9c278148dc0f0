"""
Player record store.

Durable persistence of one canonical record per player tag, with a single
"my profile" flag. Collections whose shape varies between game updates (clan,
league, unit lists, legend statistics) are kept as opaque JSON blobs that
round-trip through the same codec used by the API models.
"""

import asyncio
import json
import logging
from typing import Any, Callable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from tracker.data_models.player import (
    LegendStatistics, League, PlayerClan, PlayerSnapshot, items_from_api, items_to_list
)
from tracker.database.models import PlayerRecord
from tracker.operations.merge import merge_snapshots
from tracker.services.base import BaseService
from tracker.utils.exceptions import DecodeError, StoreError

logger = logging.getLogger(__name__)

SCALAR_COLUMNS = (
    'name',
    'exp_level',
    'trophies',
    'best_trophies',
    'attack_wins',
    'defense_wins',
    'town_hall_level',
    'town_hall_weapon_level',
    'war_stars',
    'donations',
    'donations_received',
    'clan_capital_contributions',
    'role',
    'builder_hall_level',
    'builder_base_trophies',
    'best_builder_base_trophies',
)


def _encode(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, sort_keys=True)


def _decode(blob: Optional[str], decoder: Callable[[Any], Any], column: str):
    if blob is None:
        return None
    try:
        payload = json.loads(blob)
    except ValueError as e:
        raise DecodeError(f"column '{column}' holds invalid JSON: {e}") from e
    if payload is None:
        return None
    return decoder(payload)


def apply_snapshot(record: PlayerRecord, snapshot: PlayerSnapshot) -> None:
    """Write every snapshot field onto a record, encoding the blobs."""
    for column in SCALAR_COLUMNS:
        setattr(record, column, getattr(snapshot, column))

    record.clan_data = _encode(snapshot.clan.to_dict() if snapshot.clan else None)
    record.league_data = _encode(snapshot.league.to_dict() if snapshot.league else None)
    record.troops_data = _encode(items_to_list(snapshot.troops))
    record.heroes_data = _encode(items_to_list(snapshot.heroes))
    record.spells_data = _encode(items_to_list(snapshot.spells))
    record.hero_equipment_data = _encode(items_to_list(snapshot.hero_equipment))
    record.legends_data = _encode(snapshot.legends.to_dict() if snapshot.legends else None)


def snapshot_from_record(record: PlayerRecord) -> PlayerSnapshot:
    """
    Rebuild a full snapshot from a persisted record.

    Raises:
        DecodeError: If a stored blob cannot be decoded
    """
    scalars = {column: getattr(record, column) for column in SCALAR_COLUMNS}
    return PlayerSnapshot(
        tag=record.tag,
        clan=_decode(record.clan_data, PlayerClan.from_api, 'clan_data'),
        league=_decode(record.league_data, League.from_api, 'league_data'),
        troops=_decode(record.troops_data, lambda v: items_from_api(v, 'troops'), 'troops_data'),
        heroes=_decode(record.heroes_data, lambda v: items_from_api(v, 'heroes'), 'heroes_data'),
        spells=_decode(record.spells_data, lambda v: items_from_api(v, 'spells'), 'spells_data'),
        hero_equipment=_decode(
            record.hero_equipment_data,
            lambda v: items_from_api(v, 'heroEquipment'),
            'hero_equipment_data'
        ),
        legends=_decode(record.legends_data, LegendStatistics.from_api, 'legends_data'),
        **scalars
    )


class PlayerRecordStore(BaseService):
    """
    Store for persisted player records.

    Every operation that touches storage raises StoreError on failure and
    leaves previously committed state untouched. Writers are serialized so
    two concurrent profile claims cannot interleave their flag sweeps.
    """

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._write_lock = asyncio.Lock()

    async def get_by_tag(self, tag: str) -> Optional[PlayerRecord]:
        """Get a record by exact tag, or None."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(PlayerRecord).where(PlayerRecord.tag == tag)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load record {tag}: {e}")
            raise StoreError('get_by_tag', str(e)) from e

    async def get_my_profile(self) -> Optional[PlayerRecord]:
        """Get the record flagged as my profile, or None."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(PlayerRecord)
                    .where(PlayerRecord.is_my_profile == True)
                    .order_by(PlayerRecord.updated_at.desc())
                    .limit(1)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load my profile: {e}")
            raise StoreError('get_my_profile', str(e)) from e

    async def has_my_profile(self) -> bool:
        """Check whether a profile is claimed without loading its payload."""
        async def _query():
            async with self.get_session() as session:
                result = await session.execute(
                    select(PlayerRecord.id)
                    .where(PlayerRecord.is_my_profile == True)
                    .limit(1)
                )
                return result.scalar_one_or_none() is not None

        try:
            return await self.execute_with_retry(_query)
        except SQLAlchemyError as e:
            logger.error(f"Failed to check for my profile: {e}")
            raise StoreError('has_my_profile', str(e)) from e

    async def my_profile_tags(self) -> List[str]:
        """List every tag currently flagged as my profile."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(PlayerRecord.tag).where(PlayerRecord.is_my_profile == True)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError('my_profile_tags', str(e)) from e

    async def upsert_as_my_profile(self, snapshot: PlayerSnapshot) -> PlayerRecord:
        """
        Save a snapshot and make it the one and only claimed profile.

        In a single transaction this:
        1. Finds or creates the record for the snapshot's tag
        2. Merges the snapshot into it without dropping known optional data
        3. Flags it as my profile
        4. Clears the flag on every other record

        Args:
            snapshot: Player snapshot to persist

        Returns:
            The persisted record

        Raises:
            StoreError: On storage or serialization failure, nothing committed
        """
        async with self._write_lock:
            try:
                async with self.get_session() as session:
                    result = await session.execute(
                        select(PlayerRecord).where(PlayerRecord.tag == snapshot.tag)
                    )
                    record = result.scalar_one_or_none()

                    if record is None:
                        record = PlayerRecord(tag=snapshot.tag, name=snapshot.name)
                        session.add(record)
                        merged = snapshot
                        logger.debug(f"Creating record for {snapshot.tag}")
                    else:
                        merged = merge_snapshots(snapshot_from_record(record), snapshot)

                    apply_snapshot(record, merged)
                    record.is_my_profile = True
                    await session.flush()

                    await session.execute(
                        update(PlayerRecord)
                        .where(PlayerRecord.tag != snapshot.tag)
                        .where(PlayerRecord.is_my_profile == True)
                        .values(is_my_profile=False)
                    )
                    # Commit happens automatically on context exit

                logger.info(f"Saved {snapshot.tag} as my profile")
                return record

            except SQLAlchemyError as e:
                logger.error(f"Failed to save profile {snapshot.tag}: {e}")
                raise StoreError('upsert_as_my_profile', str(e)) from e
            except (DecodeError, TypeError, ValueError) as e:
                logger.error(f"Failed to serialize profile {snapshot.tag}: {e}")
                raise StoreError('upsert_as_my_profile', f"serialization failed: {e}") from e

    async def remove_my_profile(self) -> int:
        """
        Delete every record flagged as my profile.

        Returns:
            Number of records deleted (normally 0 or 1)
        """
        async with self._write_lock:
            try:
                async with self.get_session() as session:
                    result = await session.execute(
                        delete(PlayerRecord).where(PlayerRecord.is_my_profile == True)
                    )
                    count = result.rowcount or 0
            except SQLAlchemyError as e:
                logger.error(f"Failed to remove my profile: {e}")
                raise StoreError('remove_my_profile', str(e)) from e

        if count > 1:
            logger.warning(f"Removed {count} records flagged as my profile, expected at most one")
        else:
            logger.info(f"Removed {count} profile record(s)")
        return count

    async def clear_all(self) -> int:
        """Delete every record. Used for a full data reset."""
        async with self._write_lock:
            try:
                async with self.get_session() as session:
                    result = await session.execute(delete(PlayerRecord))
                    count = result.rowcount or 0
            except SQLAlchemyError as e:
                logger.error(f"Failed to clear records: {e}")
                raise StoreError('clear_all', str(e)) from e

        logger.info(f"Cleared {count} player record(s)")
        return count

    async def load_my_snapshot(self) -> Optional[PlayerSnapshot]:
        """Load my profile and decode it into a snapshot."""
        record = await self.get_my_profile()
        if record is None:
            return None
        try:
            return snapshot_from_record(record)
        except DecodeError as e:
            logger.error(f"Stored profile {record.tag} could not be decoded: {e}")
            raise StoreError('load_my_snapshot', str(e)) from e
