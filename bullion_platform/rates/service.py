"""Rate Cache Service: the orchestrator behind ``GET /api/v1/rates``.

Per request::

    fresh cache entry ──────────────────────────────► cached: true
    miss ─► retry_with_backoff(upstream.fetch) ─ok──► cached: false  (+ background write)
                      │
                  exhausted ─► gateway.read_latest ─► fallback: true
                                        └─ nothing ─► success: false (500)

Cache state is one ``CacheEntry`` per locality, guarded by an ``asyncio.Lock``.
A miss starts at most one refresh task per locality; concurrent callers wait
on that task instead of issuing their own upstream calls.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable

from bullion_platform.rates.errors import RatesCancelledError
from bullion_platform.rates.market_hours import INDIA_BULLION_HOURS, MarketHours, is_market_hours
from bullion_platform.rates.models import CacheEntry, RateSnapshot, RatesResponse
from bullion_platform.rates.persistence import RatePersistenceGateway
from bullion_platform.rates.retry import Sleep, retry_with_backoff
from bullion_platform.rates.settings import RatesSettings
from bullion_platform.rates.upstream import UpstreamRateClient
from bullion_platform.services.logger.interface import LoggingInterface
from bullion_platform.services.metrics.interface import MetricsInterface
from bullion_platform.services.metrics.noop_metrics import NoopMetrics

Clock = Callable[[], datetime]

SHUTTING_DOWN = "Service shutting down"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class RateCacheService:
    def __init__(
        self,
        upstream: UpstreamRateClient,
        gateway: RatePersistenceGateway,
        settings: RatesSettings,
        log: LoggingInterface,
        metrics: MetricsInterface | None = None,
        clock: Clock = _utcnow,
        sleep: Sleep = asyncio.sleep,
        market_hours: MarketHours = INDIA_BULLION_HOURS,
    ) -> None:
        self.upstream = upstream
        self.gateway = gateway
        self.settings = settings
        self.log = log
        self.metrics = metrics or NoopMetrics()
        self._clock = clock
        self._sleep = sleep
        self._market_hours = market_hours

        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._inflight: dict[str, asyncio.Task[RateSnapshot]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._cancel = asyncio.Event()

    def ttl_seconds(self, now: datetime) -> float:
        if is_market_hours(now, self._market_hours):
            return self.settings.market_ttl_seconds
        return self.settings.off_hours_ttl_seconds

    @property
    def accepting(self) -> bool:
        """False once close() has started."""
        return not self._cancel.is_set()

    def cache_age_seconds(self, locality: str | None = None) -> float | None:
        """Age of the cached reading for *locality*, ``None`` if nothing is cached."""
        entry = self._entries.get(locality or self.settings.locality)
        if entry is None:
            return None
        return entry.age_ms(_epoch_ms(self._clock())) / 1000

    async def get_rates(self, locality: str | None = None) -> RatesResponse:
        locality = locality or self.settings.locality
        self.metrics.counter("rates_requests_total")
        if self._cancel.is_set():
            return RatesResponse.unavailable(SHUTTING_DOWN, status=503)

        async with self._lock:
            now = self._clock()
            entry = self._entries.get(locality)
            if entry is not None and entry.age_ms(_epoch_ms(now)) < self.ttl_seconds(now) * 1000:
                self.metrics.counter("rates_cache_hits_total")
                return RatesResponse.from_cache(entry.snapshot)

            task = self._inflight.get(locality)
            if task is None:
                self.metrics.counter("rates_cache_misses_total")
                task = asyncio.ensure_future(self._refresh(locality))
                self._inflight[locality] = task
                task.add_done_callback(lambda t, loc=locality: self._forget_inflight(loc, t))
            else:
                self.log.debug("Joining in-flight rate fetch", locality=locality)

        try:
            snapshot = await asyncio.shield(task)
        except RatesCancelledError:
            return RatesResponse.unavailable(SHUTTING_DOWN, status=503)
        except Exception as exc:
            self.log.warn("Live rates unavailable, trying persisted rates", locality=locality, error=str(exc))
            return await self._fallback(locality)
        return RatesResponse.live(snapshot)

    async def close(self) -> None:
        """Abort backoff waits, drain pending writes and release the HTTP session."""
        self._cancel.set()
        inflight = list(self._inflight.values())
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.upstream.close()
        self.log.info("Rate service closed")

    # -- internals -----------------------------------------------------------

    async def _refresh(self, locality: str) -> RateSnapshot:
        def on_retry(attempt: int, delay: float, exc: Exception) -> None:
            self.metrics.counter("rates_upstream_retries_total")
            self.log.warn(
                "Upstream fetch failed, retrying",
                locality=locality,
                attempt=attempt + 1,
                delay_s=delay,
                error=str(exc),
            )

        try:
            with self.metrics.timed("rates_upstream_fetch_seconds"):
                snapshot = await retry_with_backoff(
                    lambda: self.upstream.fetch(locality),
                    max_retries=self.settings.max_retries,
                    initial_delay=self.settings.backoff_base_seconds,
                    cancel_event=self._cancel,
                    sleep=self._sleep,
                    on_retry=on_retry,
                )
        except RatesCancelledError:
            self.log.info("Rate fetch cancelled", locality=locality)
            raise
        except Exception as exc:
            self.metrics.counter("rates_upstream_failures_total")
            self.log.error(
                "Upstream fetch failed after retries",
                locality=locality,
                attempts=self.settings.max_retries + 1,
                error=str(exc),
            )
            raise

        async with self._lock:
            self._entries[locality] = CacheEntry(snapshot, _epoch_ms(self._clock()))
        self.log.info(
            "Rates refreshed",
            locality=locality,
            gold24k=snapshot.gold24k,
            silver_per_gram=snapshot.silver_per_gram,
        )
        self._persist_in_background(locality, snapshot)
        return snapshot

    async def _fallback(self, locality: str) -> RatesResponse:
        snapshot = await self.gateway.read_latest(locality)
        if snapshot is None:
            self.metrics.counter("rates_unavailable_total")
            self.log.error("No rates available", locality=locality)
            return RatesResponse.unavailable()
        self.metrics.counter("rates_fallback_total")
        self.log.warn("Serving persisted rates", locality=locality, timestamp=snapshot.timestamp)
        return RatesResponse.from_fallback(snapshot)

    def _persist_in_background(self, locality: str, snapshot: RateSnapshot) -> None:
        task = asyncio.ensure_future(self.gateway.write_latest(locality, snapshot))
        self._background.add(task)
        task.add_done_callback(self._on_persist_done)

    def _on_persist_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            self.log.warn("Rate persistence cancelled")
            return
        exc = task.exception()
        if exc is not None:
            self.log.error("Rate persistence task failed", error=str(exc))

    def _forget_inflight(self, locality: str, task: asyncio.Task[RateSnapshot]) -> None:
        if self._inflight.get(locality) is task:
            del self._inflight[locality]
        # Waiters retrieve the outcome; mark it retrieved in case they were all cancelled.
        if not task.cancelled():
            task.exception()
