"""
Daily reset scheduling utilities.

Competitive data resets once a day at a fixed UTC hour. These helpers
compute reset boundaries and decide whether cached data is stale. They are
pure time calculations with no I/O; callers decide what to do with the answer.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tracker.constants import SyncConstants


def _as_utc(moment: datetime) -> datetime:
    # Naive datetimes are treated as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def todays_reset_instant(now: datetime, reset_hour_utc: int) -> datetime:
    """Reset boundary on the UTC calendar day of ``now``."""
    now = _as_utc(now)
    return now.replace(hour=reset_hour_utc, minute=0, second=0, microsecond=0)


def next_reset_instant(now: datetime, reset_hour_utc: int) -> datetime:
    """
    Next reset boundary strictly after ``now``.

    Today's boundary is returned unless it is at or before ``now``, in which
    case tomorrow's boundary is returned.

    Examples:
        04:00Z with reset hour 5 -> 05:00Z the same day
        06:00Z with reset hour 5 -> 05:00Z the next day
    """
    reset = todays_reset_instant(now, reset_hour_utc)
    if reset <= _as_utc(now):
        reset = todays_reset_instant(_as_utc(now) + timedelta(days=1), reset_hour_utc)
    return reset


def should_refresh(last_refresh: Optional[datetime], now: datetime, reset_hour_utc: int) -> bool:
    """True if never refreshed or the last refresh predates today's reset."""
    if last_refresh is None:
        return True
    return _as_utc(last_refresh) < todays_reset_instant(now, reset_hour_utc)


def _zone(tz_name: Optional[str]):
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


class DailyResetScheduler:
    """Reset boundary calculations bound to a reset hour and a clock."""

    def __init__(self, reset_hour_utc: int = SyncConstants.DEFAULT_RESET_HOUR_UTC,
                 clock: Callable[[], datetime] = None):
        if not 0 <= reset_hour_utc <= 23:
            raise ValueError(f"reset_hour_utc must be between 0 and 23, got {reset_hour_utc}")
        self.reset_hour_utc = reset_hour_utc
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return _as_utc(self._clock())

    def next_reset_instant(self, now: datetime = None) -> datetime:
        return next_reset_instant(now or self.now(), self.reset_hour_utc)

    def todays_reset_instant(self, now: datetime = None) -> datetime:
        return todays_reset_instant(now or self.now(), self.reset_hour_utc)

    def should_refresh(self, last_refresh: Optional[datetime], now: datetime = None) -> bool:
        return should_refresh(last_refresh, now or self.now(), self.reset_hour_utc)

    def seconds_until_next_reset(self, now: datetime = None) -> float:
        now = now or self.now()
        return (self.next_reset_instant(now) - _as_utc(now)).total_seconds()

    def format_next_reset(self, tz_name: str = None, now: datetime = None) -> str:
        """Next reset formatted in the user's timezone, e.g. '2024-01-01 06:00 CET'."""
        local = self.next_reset_instant(now).astimezone(_zone(tz_name))
        return local.strftime('%Y-%m-%d %H:%M %Z')

    def reset_time_in_timezone(self, tz_name: str = None, now: datetime = None) -> str:
        """Time of day of today's reset in the user's timezone, e.g. '06:00'."""
        local = self.todays_reset_instant(now).astimezone(_zone(tz_name))
        return local.strftime('%H:%M')
