"""Last-known-good rate storage, one active row per locality.

The gateway is best-effort secondary storage: neither method raises. A read
that cannot reach the database returns ``None`` exactly like a read that
finds nothing, but the two are logged at different levels and outages are
counted in ``rates_persistence_errors_total``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable

from bullion_platform.rates.errors import PersistenceUnavailableError
from bullion_platform.rates.models import RateSnapshot, parse_instant, utc_iso
from bullion_platform.services.database.interface import DatabaseInterface
from bullion_platform.services.logger.interface import LoggingInterface
from bullion_platform.services.metrics.interface import MetricsInterface
from bullion_platform.services.metrics.noop_metrics import NoopMetrics

Clock = Callable[[], datetime]

_PRICE_COLUMNS = (
    ("gold_24k", "gold24k"),
    ("gold_22k", "gold22k"),
    ("gold_18k", "gold18k"),
    ("silver_per_gram", "silver_per_gram"),
    ("silver_per_kg", "silver_per_kg"),
    ("gold_10gm", "gold_10gm"),
    ("silver_10gm", "silver_10gm"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RatePersistenceGateway:
    def __init__(
        self,
        db: DatabaseInterface,
        log: LoggingInterface,
        metrics: MetricsInterface | None = None,
        table: str = "metal_rates",
        clock: Clock = _utcnow,
    ) -> None:
        self.db = db
        self.log = log
        self.metrics = metrics or NoopMetrics()
        self.table = table
        self._clock = clock
        self._write_lock = asyncio.Lock()

    async def read_latest(self, locality: str) -> RateSnapshot | None:
        """Most recently updated active snapshot for *locality*, or ``None``."""
        try:
            row = await self._fetch_active(locality)
        except PersistenceUnavailableError as exc:
            self.metrics.counter("rates_persistence_errors_total", tags={"operation": "read"})
            self.log.error("Rate store read failed", locality=locality, error=str(exc.__cause__ or exc))
            return None

        if row is None:
            self.log.warn("No persisted rates", locality=locality)
            return None
        try:
            return self._row_to_snapshot(row)
        except (KeyError, ValueError) as exc:
            self.metrics.counter("rates_persistence_errors_total", tags={"operation": "decode"})
            self.log.error("Persisted rate row is invalid", locality=locality, id=row.get("id"), error=str(exc))
            return None

    async def write_latest(self, locality: str, snapshot: RateSnapshot) -> bool:
        """Upsert the active row for *locality*. Returns False if the write failed."""
        async with self._write_lock:
            try:
                inserted = await self._upsert(locality, snapshot)
            except PersistenceUnavailableError as exc:
                self.metrics.counter("rates_persistence_errors_total", tags={"operation": "write"})
                self.log.error("Rate store write failed", locality=locality, error=str(exc.__cause__ or exc))
                return False
        self.log.debug("Rates persisted", locality=locality, inserted=inserted)
        return True

    # -- internals -----------------------------------------------------------

    async def _fetch_active(self, locality: str) -> dict[str, Any] | None:
        try:
            return await self.db.fetch_one_async(
                f"SELECT * FROM {self.table} WHERE locality = $1 AND is_active = $2 "
                "ORDER BY updated_at DESC LIMIT 1",
                [locality, True],
            )
        except Exception as exc:
            raise PersistenceUnavailableError(f"read from {self.table} failed") from exc

    async def _upsert(self, locality: str, snapshot: RateSnapshot) -> bool:
        """Returns True when a new row was inserted, False when one was updated."""
        now = self._clock()
        values = self._snapshot_columns(snapshot)
        try:
            updated = await self.db.execute_async(
                f"UPDATE {self.table} SET gold_24k = $1, gold_22k = $2, gold_18k = $3, "
                "silver_per_gram = $4, silver_per_kg = $5, gold_10gm = $6, silver_10gm = $7, "
                "observed_at = $8, source = $9, updated_at = $10 "
                "WHERE locality = $11 AND is_active = $12",
                [
                    values["gold_24k"],
                    values["gold_22k"],
                    values["gold_18k"],
                    values["silver_per_gram"],
                    values["silver_per_kg"],
                    values["gold_10gm"],
                    values["silver_10gm"],
                    values["observed_at"],
                    values["source"],
                    now,
                    locality,
                    True,
                ],
            )
            if updated:
                return False
            row = {
                "id": f"{locality}-{int(now.timestamp() * 1000)}",
                "locality": locality,
                **values,
                "is_active": True,
                "created_at": now,
                "updated_at": now,
            }
            await self.db.insert_one_async(self.table, row)
            return True
        except Exception as exc:
            raise PersistenceUnavailableError(f"write to {self.table} failed") from exc

    @staticmethod
    def _snapshot_columns(snapshot: RateSnapshot) -> dict[str, Any]:
        columns: dict[str, Any] = {col: getattr(snapshot, attr) for col, attr in _PRICE_COLUMNS}
        columns["observed_at"] = parse_instant(snapshot.timestamp)
        columns["source"] = snapshot.source
        return columns

    @staticmethod
    def _row_to_snapshot(row: dict[str, Any]) -> RateSnapshot:
        observed = row.get("observed_at")
        if isinstance(observed, datetime):
            timestamp = utc_iso(observed)
        else:
            timestamp = str(observed)
        prices = {attr: row.get(col) for col, attr in _PRICE_COLUMNS}
        if prices["gold_10gm"] is None:
            del prices["gold_10gm"]
        if prices["silver_10gm"] is None:
            del prices["silver_10gm"]
        return RateSnapshot(
            locality=row["locality"],
            timestamp=timestamp,
            source=row.get("source") or "",
            **prices,
        )
