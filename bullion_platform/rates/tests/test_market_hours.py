from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

import pytest

from bullion_platform.rates.market_hours import INDIA_BULLION_HOURS, MarketHours, is_market_hours

IST = timezone(timedelta(hours=5, minutes=30))


def _ist(day: int, hour: int, minute: int) -> datetime:
    # January 2026: the 15th is a Thursday, the 17th/18th the weekend.
    return datetime(2026, 1, day, hour, minute, tzinfo=IST)


@pytest.mark.parametrize(
    "hour,minute,expected",
    [
        (9, 29, False),
        (9, 30, True),
        (12, 0, True),
        (16, 59, True),
        (17, 0, False),
        (23, 59, False),
        (0, 0, False),
    ],
)
def test_session_boundaries_on_weekday(hour: int, minute: int, expected: bool) -> None:
    assert is_market_hours(_ist(15, hour, minute)) is expected


@pytest.mark.parametrize("day", [17, 18])
@pytest.mark.parametrize("hour", [0, 9, 10, 12, 16, 23])
def test_weekend_always_closed(day: int, hour: int) -> None:
    assert is_market_hours(_ist(day, hour, 30)) is False


def test_utc_instants_converted_to_local_time() -> None:
    # 04:00 UTC == 09:30 IST, 11:30 UTC == 17:00 IST
    assert is_market_hours(datetime(2026, 1, 15, 4, 0, tzinfo=timezone.utc))
    assert not is_market_hours(datetime(2026, 1, 15, 3, 59, tzinfo=timezone.utc))
    assert not is_market_hours(datetime(2026, 1, 15, 11, 30, tzinfo=timezone.utc))


def test_friday_evening_utc_is_saturday_in_ist() -> None:
    # Friday 20:00 UTC is already Saturday 01:30 in India
    assert not is_market_hours(datetime(2026, 1, 16, 20, 0, tzinfo=timezone.utc))


def test_naive_datetime_is_utc() -> None:
    assert is_market_hours(datetime(2026, 1, 15, 6, 0))
    assert not is_market_hours(datetime(2026, 1, 15, 12, 0))


def test_custom_market() -> None:
    dubai = MarketHours(
        utc_offset=timedelta(hours=4),
        opens_at=time(10, 0),
        closes_at=time(22, 0),
        weekend_days=frozenset({4, 5}),
    )
    thursday_evening = datetime(2026, 1, 15, 21, 0, tzinfo=timezone(timedelta(hours=4)))
    friday_noon = datetime(2026, 1, 16, 12, 0, tzinfo=timezone(timedelta(hours=4)))
    assert is_market_hours(thursday_evening, dubai)
    assert not is_market_hours(friday_noon, dubai)
    assert not is_market_hours(thursday_evening, INDIA_BULLION_HOURS)
