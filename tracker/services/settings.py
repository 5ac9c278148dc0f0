"""
Settings service for the tracker.

Provides the persisted flags surface with in-memory caching: whether a
profile has been claimed, when it was last refreshed, the auto-refresh toggle
and the user's display timezone.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from tracker.constants import SettingKeys
from tracker.database.models import Setting
from tracker.services.base import BaseService
from tracker.utils.exceptions import StoreError

logger = logging.getLogger(__name__)

class SettingsService(BaseService):
    """Manages persisted settings with simple caching."""

    def __init__(self, session_factory):
        """
        Initialize settings service with session factory.

        Args:
            session_factory: Async session factory from Database class
        """
        super().__init__(session_factory)
        self._cache: Dict[str, Any] = {}

    async def load_all(self):
        """Load all settings from database into memory with error handling."""
        new_cache = {}
        async with self.get_session() as session:
            result = await session.execute(select(Setting))
            settings = result.scalars().all()

            for setting in settings:
                try:
                    new_cache[setting.key] = json.loads(setting.value)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON for setting '{setting.key}', skipping")
                    continue

        self._cache = new_cache
        logger.info(f"Loaded {len(self._cache)} settings")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get setting value by key.

        Args:
            key: Setting key (e.g., 'profile.has_claimed')
            default: Default value if key not found

        Returns:
            Setting value or default
        """
        return self._cache.get(key, default)

    async def set(self, key: str, value: Any):
        """
        Persist a setting value and update the cache.

        Args:
            key: Setting key
            value: Setting value (will be JSON-encoded)
        """
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(Setting).where(Setting.key == key)
                )
                setting = result.scalar_one_or_none()

                if setting:
                    setting.value = json.dumps(value)
                else:
                    session.add(Setting(key=key, value=json.dumps(value)))
                # Commit happens automatically on context exit
        except SQLAlchemyError as e:
            logger.error(f"Failed to save setting '{key}': {e}")
            raise StoreError('settings.set', str(e)) from e

        self._cache[key] = value

    async def reset(self):
        """Delete all persisted settings."""
        try:
            async with self.get_session() as session:
                await session.execute(delete(Setting))
        except SQLAlchemyError as e:
            logger.error(f"Failed to reset settings: {e}")
            raise StoreError('settings.reset', str(e)) from e

        self._cache = {}
        logger.info("Settings reset to defaults")

    def list_all(self) -> Dict[str, Any]:
        """Return all setting values."""
        return self._cache.copy()

    # Typed accessors

    def has_claimed_profile(self) -> bool:
        """
        Fast cold-start hint that a profile was claimed.

        Only eventually consistent with the record store; callers must
        re-check the store before relying on it.
        """
        return bool(self.get(SettingKeys.HAS_CLAIMED_PROFILE, False))

    async def set_claimed_profile(self, claimed: bool):
        if self.has_claimed_profile() != claimed or SettingKeys.HAS_CLAIMED_PROFILE not in self._cache:
            await self.set(SettingKeys.HAS_CLAIMED_PROFILE, claimed)

    def last_refresh_at(self) -> Optional[datetime]:
        value = self.get(SettingKeys.LAST_REFRESH_AT)
        if not value:
            return None
        try:
            parsed = datetime.fromisoformat(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed last refresh time: {value!r}")
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    async def mark_refreshed(self, when: datetime = None):
        when = when or datetime.now(timezone.utc)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        await self.set(SettingKeys.LAST_REFRESH_AT, when.astimezone(timezone.utc).isoformat())

    def auto_refresh_enabled(self) -> bool:
        return bool(self.get(SettingKeys.AUTO_REFRESH_ENABLED, False))

    async def set_auto_refresh(self, enabled: bool):
        await self.set(SettingKeys.AUTO_REFRESH_ENABLED, bool(enabled))

    def display_timezone(self) -> str:
        return self.get(SettingKeys.TIMEZONE, 'UTC')

    async def set_display_timezone(self, tz_name: str):
        await self.set(SettingKeys.TIMEZONE, tz_name)
