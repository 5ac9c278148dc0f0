"""
Tracker-wide constants.

This module contains the magic numbers and fixed keys used throughout the
codebase so the sync core and its collaborators agree on them.
"""

class SyncConstants:
    """Constants related to profile synchronization."""
    
    # Daily reset boundary for competitive data, in UTC
    DEFAULT_RESET_HOUR_UTC = 5
    
    # League name fragment that enables the rankings lookup
    LEGEND_LEAGUE_MARKER = "Legend"

class CacheConstants:
    """Constants for caching behavior."""
    
    # Last searched player stays valid for one hour
    SESSION_SNAPSHOT_TTL = 3600

class SettingKeys:
    """Keys of the persisted settings surface."""
    
    HAS_CLAIMED_PROFILE = "profile.has_claimed"
    LAST_REFRESH_AT = "profile.last_refresh_at"
    AUTO_REFRESH_ENABLED = "refresh.auto_enabled"
    TIMEZONE = "display.timezone"

class RankingDefaults:
    """Fallback values used when a player has no ranking data."""
    
    COUNTRY_CODE = "US"
    COUNTRY_NAME = "United States"
    STREAK = 0
