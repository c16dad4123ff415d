"""HTTP client for the upstream bullion rate provider.

One call to ``fetch`` is one outbound GET. Retrying and caching belong to the
caller (``retry_with_backoff`` and ``RateCacheService``).

Expected body (numbers or numeric strings)::

    {"gold": "7450", "silver": "92.5"}

Optionally ``gold22k`` / ``gold18k`` when the provider quotes them directly,
and the whole object may be wrapped in ``{"data": {...}}``.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable

import aiohttp

from bullion_platform.rates.errors import (
    BadStatusError,
    MalformedPayloadError,
    NetworkFailureError,
)
from bullion_platform.rates.models import RateSnapshot, utc_iso
from bullion_platform.rates.settings import RatesSettings

# Some providers reject requests without a browser user agent.
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _excerpt(raw: bytes) -> str:
    return raw[:500].decode("utf-8", errors="replace")


class UpstreamRateClient:
    def __init__(
        self,
        settings: RatesSettings,
        clock: Clock = _utcnow,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = settings.upstream_url
        self._api_key = settings.api_key
        self._provider = settings.provider_name
        self._timeout = aiohttp.ClientTimeout(total=settings.upstream_timeout)
        self._clock = clock
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def fetch(self, locality: str) -> RateSnapshot:
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        params = {"key": self._api_key} if self._api_key else None
        try:
            async with self._get_session().get(
                self._url, headers=headers, params=params, timeout=self._timeout
            ) as resp:
                raw = await resp.read()
                if resp.status < 200 or resp.status >= 300:
                    raise BadStatusError(resp.status, payload=_excerpt(raw))
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkFailureError(f"Upstream request failed: {exc!r}") from exc

        try:
            body = json.loads(raw)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedPayloadError("Upstream body is not JSON", payload=_excerpt(raw)) from exc
        return self._parse(body, locality)

    def _parse(self, body: Any, locality: str) -> RateSnapshot:
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        if not isinstance(body, dict):
            raise MalformedPayloadError("Upstream body is not a JSON object", payload=body)
        try:
            return RateSnapshot.from_prices(
                locality=locality,
                gold24k=body.get("gold"),
                silver_per_gram=body.get("silver"),
                gold22k=body.get("gold22k"),
                gold18k=body.get("gold18k"),
                timestamp=utc_iso(self._clock()),
                source=self._provider,
            )
        except ValueError as exc:
            raise MalformedPayloadError(str(exc), payload=body) from exc

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
