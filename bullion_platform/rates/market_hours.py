"""Trading-session policy used to pick the cache lifetime.

Pure functions of an instant: no clock reads, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone


@dataclass(frozen=True)
class MarketHours:
    """A market's weekly session in its own civil time.

    ``weekend_days`` uses ``datetime.weekday()`` numbering (Monday == 0).
    The session is half-open: ``opens_at <= local time < closes_at``.
    """

    utc_offset: timedelta
    opens_at: time
    closes_at: time
    weekend_days: frozenset[int] = frozenset({5, 6})

    @property
    def tz(self) -> timezone:
        return timezone(self.utc_offset)


# Indian bullion desks: Monday-Friday 09:30-17:00 IST (UTC+05:30, no DST).
INDIA_BULLION_HOURS = MarketHours(
    utc_offset=timedelta(hours=5, minutes=30),
    opens_at=time(9, 30),
    closes_at=time(17, 0),
)


def is_market_hours(now: datetime, hours: MarketHours = INDIA_BULLION_HOURS) -> bool:
    """True when *now* falls inside the trading session of *hours*.

    Naive datetimes are interpreted as UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(hours.tz)
    if local.weekday() in hours.weekend_days:
        return False
    return hours.opens_at <= local.time() < hours.closes_at
