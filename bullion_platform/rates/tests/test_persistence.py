from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from bullion_platform.rates.models import RateSnapshot
from bullion_platform.rates.persistence import RatePersistenceGateway
from bullion_platform.services.database.memory_database import MemoryDatabase
from bullion_platform.services.logger.memory_logger import MemoryLogger
from bullion_platform.services.metrics.memory_metrics import MemoryMetrics

T0 = datetime(2026, 1, 15, 5, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class BrokenDatabase(MemoryDatabase):
    """Connected, but every query fails like a dropped Postgres connection."""

    async def fetch_one_async(self, query: str, params: list[Any] | None = None) -> dict[str, Any] | None:
        raise ConnectionError("connection reset by peer")

    async def execute_async(self, query: str, params: list[Any] | None = None) -> int:
        raise ConnectionError("connection reset by peer")


def _snapshot(gold: float = 7450, silver: float = 92.5, ts: datetime = T0) -> RateSnapshot:
    return RateSnapshot.from_prices(
        locality="India", gold24k=gold, silver_per_gram=silver,
        timestamp=ts.isoformat(), source="Bullions.co.in",
    )


async def _gateway(db: MemoryDatabase | None = None, clock: Clock | None = None):
    db = db or MemoryDatabase()
    await db.connect_async()
    log = MemoryLogger()
    metrics = MemoryMetrics()
    return RatePersistenceGateway(db, log, metrics, clock=clock or Clock()), db, log, metrics


async def test_write_then_read_round_trip() -> None:
    gateway, _, _, _ = await _gateway()
    snapshot = _snapshot()
    assert await gateway.write_latest("India", snapshot) is True
    assert await gateway.read_latest("India") == snapshot


async def test_upsert_keeps_one_active_row_per_locality() -> None:
    clock = Clock()
    gateway, db, _, _ = await _gateway(clock=clock)
    await gateway.write_latest("India", _snapshot(gold=7000))
    clock.now = T0 + timedelta(minutes=10)
    await gateway.write_latest("India", _snapshot(gold=7450, ts=clock.now))

    rows = db.fetch_all("SELECT * FROM metal_rates WHERE locality = $1", ["India"])
    assert len(rows) == 1
    assert rows[0]["gold_24k"] == 7450
    assert rows[0]["id"] == f"India-{int(T0.timestamp() * 1000)}"
    assert rows[0]["created_at"] == T0
    assert rows[0]["updated_at"] == clock.now
    assert (await gateway.read_latest("India")).gold24k == 7450


async def test_localities_are_independent() -> None:
    gateway, db, _, _ = await _gateway()
    await gateway.write_latest("India", _snapshot(gold=7450))
    dubai = RateSnapshot.from_prices(
        locality="Dubai", gold24k=300, silver_per_gram=3.5, timestamp=T0.isoformat(), source="x",
    )
    await gateway.write_latest("Dubai", dubai)
    assert len(db.fetch_all("SELECT * FROM metal_rates")) == 2
    assert (await gateway.read_latest("Dubai")).gold24k == 300
    assert (await gateway.read_latest("India")).gold24k == 7450


async def test_read_ignores_inactive_rows() -> None:
    gateway, db, _, _ = await _gateway()
    db.insert_one("metal_rates", {
        "id": "India-1", "locality": "India", "gold_24k": 6000, "gold_22k": 5496, "gold_18k": 4500,
        "silver_per_gram": 80, "silver_per_kg": 80000, "observed_at": T0, "source": "old",
        "is_active": False, "updated_at": T0,
    })
    assert await gateway.read_latest("India") is None


async def test_absent_row_logged_as_warning() -> None:
    gateway, _, log, metrics = await _gateway()
    assert await gateway.read_latest("India") is None
    assert [e.msg for e in log.at_level("warn")] == ["No persisted rates"]
    assert metrics.counters.get("rates_persistence_errors_total") is None


async def test_read_outage_logged_as_error_and_returns_none() -> None:
    gateway, _, log, metrics = await _gateway(db=BrokenDatabase())
    assert await gateway.read_latest("India") is None
    errors = log.at_level("error")
    assert errors[0].msg == "Rate store read failed"
    assert "connection reset" in errors[0].ctx["error"]
    assert metrics.count("rates_persistence_errors_total", operation="read") == 1


async def test_write_failure_swallowed_and_logged() -> None:
    gateway, _, log, metrics = await _gateway(db=BrokenDatabase())
    assert await gateway.write_latest("India", _snapshot()) is False
    assert log.at_level("error")[0].msg == "Rate store write failed"
    assert metrics.count("rates_persistence_errors_total", operation="write") == 1


async def test_disconnected_database_degrades() -> None:
    db = MemoryDatabase()
    gateway = RatePersistenceGateway(db, MemoryLogger())
    assert await gateway.read_latest("India") is None
    assert await gateway.write_latest("India", _snapshot()) is False


async def test_corrupt_row_is_not_served() -> None:
    gateway, db, log, _ = await _gateway()
    db.insert_one("metal_rates", {
        "id": "India-1", "locality": "India", "gold_24k": "garbage", "gold_22k": 1, "gold_18k": 1,
        "silver_per_gram": 80, "silver_per_kg": 80000, "observed_at": T0, "source": "x",
        "is_active": True, "updated_at": T0,
    })
    assert await gateway.read_latest("India") is None
    assert log.at_level("error")[0].msg == "Persisted rate row is invalid"
