"""
Time/Timezone adapter interface.

All stored timestamps are UTC. Calendar-day logic (view dedup, "today",
trend buckets) uses the site timezone.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol


class TimePort(Protocol):
    """Time/Timezone adapter interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...

    def to_local(self, utc_dt: datetime) -> datetime:
        """Convert UTC to site-local time (naive input treated as UTC)."""
        ...

    def local_date(self, utc_dt: datetime) -> date:
        """Calendar date of a UTC instant in the site timezone."""
        ...

    def day_bounds_utc(self, local_day: date) -> tuple[datetime, datetime]:
        """UTC [start, end) covering a site-local calendar day."""
        ...
