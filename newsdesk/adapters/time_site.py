"""
Site Time Adapter (TimePort implementation).

The site publishes on a single calendar: view dedup ("one per viewer per
day"), "today" counters, and publication trend buckets all use the site
timezone. Storage stays in UTC.

Key behaviors:
- now_utc: current UTC time
- to_local / local_date: UTC instant to site-local time / calendar date
- day_bounds_utc: UTC [start, end) of a local day (DST days are 23h or 25h)
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/London"


class SiteTimeAdapter:
    """Time adapter bound to the site timezone."""

    def __init__(self, tz_name: str = DEFAULT_TIMEZONE) -> None:
        """
        Initialize with the site timezone.

        Args:
            tz_name: IANA timezone name (default: Europe/London)
        """
        self._tz_name = tz_name
        self._tz = ZoneInfo(tz_name)

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)

    def to_local(self, utc_dt: datetime) -> datetime:
        """
        Convert UTC to site-local time.

        If utc_dt is naive, it's assumed to be UTC.
        """
        if utc_dt.tzinfo is None:
            utc_dt = utc_dt.replace(tzinfo=UTC)
        return utc_dt.astimezone(self._tz)

    def local_date(self, utc_dt: datetime) -> date:
        """Calendar date of an instant in the site timezone."""
        return self.to_local(utc_dt).date()

    def day_bounds_utc(self, local_day: date) -> tuple[datetime, datetime]:
        """UTC [start, end) of a site-local calendar day."""
        start = datetime.combine(local_day, time.min, tzinfo=self._tz)
        end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=self._tz)
        return start.astimezone(UTC), end.astimezone(UTC)

    @property
    def timezone_name(self) -> str:
        """Get the site timezone name."""
        return self._tz_name


class FrozenTimeAdapter(SiteTimeAdapter):
    """
    Time adapter that returns a fixed time.

    Useful for deterministic testing.
    """

    def __init__(self, frozen_utc: datetime, tz_name: str = DEFAULT_TIMEZONE) -> None:
        super().__init__(tz_name)
        if frozen_utc.tzinfo is None:
            frozen_utc = frozen_utc.replace(tzinfo=UTC)
        self._frozen_utc = frozen_utc.astimezone(UTC)

    def now_utc(self) -> datetime:
        """Get frozen UTC time."""
        return self._frozen_utc

    def advance(self, delta: timedelta) -> None:
        """Advance frozen time by delta (for testing)."""
        self._frozen_utc = self._frozen_utc + delta

    def set_now(self, now_utc: datetime) -> None:
        self._frozen_utc = now_utc.astimezone(UTC)


def create_time_adapter(tz_name: str = DEFAULT_TIMEZONE) -> SiteTimeAdapter:
    """Factory function to create a time adapter."""
    return SiteTimeAdapter(tz_name)
