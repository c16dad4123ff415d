"""Consumer-side rate state: what a storefront widget or watcher displays.

``ClientRateStore`` is an explicit object (build one per consumer, or per
test) holding the last rates it saw. It throttles refreshes to one per
``throttle_seconds``, auto-refreshes every ``refresh_interval`` seconds once
started, and never drops rates it has already shown: a failed refresh only
sets ``error``.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable

import aiohttp

from bullion_platform.rates.errors import RatesTransportError
from bullion_platform.rates.models import RateSnapshot, utc_iso
from bullion_platform.rates.retry import Sleep
from bullion_platform.services.logger.interface import LoggingInterface

Clock = Callable[[], datetime]

DEFAULT_THROTTLE_SECONDS = 60
DEFAULT_REFRESH_INTERVAL = 5 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def demo_snapshot(now: datetime) -> RateSnapshot:
    """Placeholder rates shown before the first real fetch completes."""
    return RateSnapshot(
        locality="India",
        gold24k=7450,
        gold22k=6830,
        gold18k=5730,
        silver_per_gram=92.5,
        silver_per_kg=92500,
        gold_10gm=74500,
        silver_10gm=925,
        timestamp=utc_iso(now),
        source="Bullions.co.in",
    )


@dataclass(frozen=True)
class RatesState:
    rates: RateSnapshot
    loading: bool = False
    error: str | None = None
    last_fetch_time_ms: int | None = None
    is_fallback: bool = False


Listener = Callable[[RatesState], None]


class RatesEndpointClient:
    """GETs the rate endpoint and unwraps its envelope.

    Every failure (unreachable, non-2xx, bad JSON, ``success: false``) is
    raised as ``RatesTransportError``.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def get(self, locality: str | None = None) -> tuple[RateSnapshot, bool]:
        """Returns ``(snapshot, is_fallback)``."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        params = {"locality": locality} if locality else None
        try:
            async with self._session.get(self.url, params=params) as resp:
                status = resp.status
                raw = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise RatesTransportError(f"Rate service unreachable: {exc!r}") from exc

        body = _decode(raw)
        if status < 200 or status >= 300:
            message = body.get("error") if isinstance(body, dict) else None
            raise RatesTransportError(
                message or f"Rate service responded with status {status}", status_code=status
            )
        if not isinstance(body, dict):
            raise RatesTransportError("Rate service returned a malformed response", status_code=status)
        if not body.get("success"):
            raise RatesTransportError(body.get("error") or "Rate service reported failure", status_code=status)
        try:
            snapshot = RateSnapshot.from_dict(body.get("data"))
        except ValueError as exc:
            raise RatesTransportError(f"Rate service returned invalid rates: {exc}", status_code=status) from exc
        return snapshot, bool(body.get("fallback"))

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def _decode(raw: bytes) -> Any:
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, ValueError):
        return None


class ClientRateStore:
    def __init__(
        self,
        endpoint: RatesEndpointClient,
        log: LoggingInterface,
        locality: str | None = None,
        clock: Clock = _utcnow,
        sleep: Sleep = asyncio.sleep,
        throttle_seconds: float = DEFAULT_THROTTLE_SECONDS,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ) -> None:
        self.endpoint = endpoint
        self.log = log
        self.locality = locality
        self._clock = clock
        self._sleep = sleep
        self.throttle_seconds = throttle_seconds
        self.refresh_interval = refresh_interval

        self._state = RatesState(rates=demo_snapshot(clock()))
        self._listeners: list[Listener] = []
        self._inflight: asyncio.Task[None] | None = None
        self._refresher: asyncio.Task[None] | None = None

    @property
    def state(self) -> RatesState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the new state on every change; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def fetch_rates(self) -> None:
        """Refresh unless throttled. Concurrent callers share one request."""
        if self._inflight is None:
            if self._throttled():
                self.log.debug("Rate refresh throttled", last_fetch_time_ms=self._state.last_fetch_time_ms)
                return
            self._inflight = asyncio.ensure_future(self._fetch())
            self._inflight.add_done_callback(self._clear_inflight)
        await asyncio.shield(self._inflight)

    def start(self) -> None:
        """Fetch now, then every ``refresh_interval`` seconds until ``stop()``."""
        if self._refresher is None or self._refresher.done():
            self._refresher = asyncio.ensure_future(self._auto_refresh())

    async def stop(self) -> None:
        """Cancel the refresh timer and any in-flight fetch; drop subscribers."""
        tasks = [t for t in (self._refresher, self._inflight) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._refresher = None
        self._inflight = None
        self._listeners.clear()

    # -- internals -----------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    def _throttled(self) -> bool:
        last = self._state.last_fetch_time_ms
        return last is not None and self._now_ms() - last < self.throttle_seconds * 1000

    async def _fetch(self) -> None:
        self._set_state(loading=True, error=None)
        try:
            snapshot, is_fallback = await self.endpoint.get(self.locality)
        except RatesTransportError as exc:
            self.log.warn("Rate refresh failed, keeping previous rates", error=str(exc), status=exc.status_code)
            self._set_state(loading=False, error=str(exc))
            return
        except (Exception, asyncio.CancelledError):
            self._set_state(loading=False)
            raise
        self._set_state(
            rates=snapshot,
            loading=False,
            error=None,
            last_fetch_time_ms=self._now_ms(),
            is_fallback=is_fallback,
        )

    async def _auto_refresh(self) -> None:
        while True:
            try:
                await self.fetch_rates()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.log.error("Scheduled rate refresh crashed", error=str(exc))
            await self._sleep(self.refresh_interval)

    def _clear_inflight(self, task: asyncio.Task[None]) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            self.log.error("Rate fetch failed unexpectedly", error=str(task.exception()))

    def _set_state(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as exc:
                self.log.error("Rate listener raised", error=str(exc))
