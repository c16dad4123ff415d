"""Canonical rate data shapes.

``RateSnapshot`` is the unit of truth for one reading. It validates itself on
construction, so a snapshot that exists is always safe to cache, persist and
serve. The wire form (``to_dict``/``from_dict``) uses the camelCase keys the
storefront widgets read::

    {"locality": "India", "gold24k": 7450.0, "gold22k": 6824.2, "gold18k": 5587.5,
     "silverPerGram": 92.5, "silverPerKg": 92500.0, "gold10gm": 74500.0,
     "silver10gm": 925.0, "timestamp": "2026-01-15T05:00:00+00:00",
     "source": "Bullions.co.in"}
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

GOLD_22K_PURITY = 0.916
GOLD_18K_PURITY = 0.75
GRAMS_PER_KG = 1000
TEN_GRAM_UNIT = 10

_REQUIRED_PRICES = ("gold24k", "gold22k", "gold18k", "silver_per_gram", "silver_per_kg")
_OPTIONAL_PRICES = ("gold_10gm", "silver_10gm")

# snapshot attribute -> wire key
_WIRE_KEYS = {
    "gold24k": "gold24k",
    "gold22k": "gold22k",
    "gold18k": "gold18k",
    "silver_per_gram": "silverPerGram",
    "silver_per_kg": "silverPerKg",
    "gold_10gm": "gold10gm",
    "silver_10gm": "silver10gm",
}


def utc_iso(moment: datetime) -> str:
    """ISO-8601 rendering in UTC; naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def parse_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_price(value: Any, field: str) -> float:
    """Coerce a provider/DB value (number or numeric string) into a valid price."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} is missing or not numeric: {value!r}")
    if isinstance(value, str):
        value = value.strip().replace(",", "")
    try:
        price = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field} is not numeric: {value!r}") from exc
    if not math.isfinite(price) or price < 0:
        raise ValueError(f"{field} must be a non-negative finite number, got {price!r}")
    return price


def _consistent(derived: float, base: float, factor: float) -> bool:
    return math.isclose(derived, base * factor, rel_tol=1e-9, abs_tol=1e-6)


@dataclass(frozen=True)
class RateSnapshot:
    locality: str
    gold24k: float
    gold22k: float
    gold18k: float
    silver_per_gram: float
    silver_per_kg: float
    timestamp: str
    source: str
    gold_10gm: float | None = None
    silver_10gm: float | None = None

    def __post_init__(self) -> None:
        if not self.locality:
            raise ValueError("locality is required")
        if not self.source:
            raise ValueError("source is required")
        for name in _REQUIRED_PRICES:
            object.__setattr__(self, name, to_price(getattr(self, name), name))
        for name in _OPTIONAL_PRICES:
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_price(value, name))
        try:
            parse_instant(self.timestamp)
        except (TypeError, ValueError, AttributeError) as exc:
            raise ValueError(f"timestamp is not ISO-8601: {self.timestamp!r}") from exc

        if not _consistent(self.silver_per_kg, self.silver_per_gram, GRAMS_PER_KG):
            raise ValueError("silver_per_kg must equal silver_per_gram * 1000")
        if self.gold_10gm is not None and not _consistent(
            self.gold_10gm, self.gold24k, TEN_GRAM_UNIT
        ):
            raise ValueError("gold_10gm must equal gold24k * 10")
        if self.silver_10gm is not None and not _consistent(
            self.silver_10gm, self.silver_per_gram, TEN_GRAM_UNIT
        ):
            raise ValueError("silver_10gm must equal silver_per_gram * 10")

    @classmethod
    def from_prices(
        cls,
        *,
        locality: str,
        gold24k: Any,
        silver_per_gram: Any,
        timestamp: str,
        source: str,
        gold22k: Any | None = None,
        gold18k: Any | None = None,
    ) -> RateSnapshot:
        """Build a snapshot from per-gram prices, deriving everything else.

        22k/18k use the purity ratios unless the provider quoted them.
        """
        gold = to_price(gold24k, "gold24k")
        silver = to_price(silver_per_gram, "silver_per_gram")
        return cls(
            locality=locality,
            gold24k=gold,
            gold22k=gold * GOLD_22K_PURITY if gold22k is None else to_price(gold22k, "gold22k"),
            gold18k=gold * GOLD_18K_PURITY if gold18k is None else to_price(gold18k, "gold18k"),
            silver_per_gram=silver,
            silver_per_kg=silver * GRAMS_PER_KG,
            gold_10gm=gold * TEN_GRAM_UNIT,
            silver_10gm=silver * TEN_GRAM_UNIT,
            timestamp=timestamp,
            source=source,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"locality": self.locality}
        for attr, key in _WIRE_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        data["timestamp"] = self.timestamp
        data["source"] = self.source
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RateSnapshot:
        """Parse the wire shape; raises ``ValueError`` on anything invalid."""
        if not isinstance(data, dict):
            raise ValueError(f"rate payload must be an object, got {type(data).__name__}")
        locality = data.get("locality") or data.get("city")
        kwargs: dict[str, Any] = {}
        for attr, key in _WIRE_KEYS.items():
            if attr in _OPTIONAL_PRICES and data.get(key) is None:
                continue
            kwargs[attr] = data.get(key)
        return cls(
            locality=str(locality or ""),
            timestamp=data.get("timestamp"),  # type: ignore[arg-type]
            source=str(data.get("source") or ""),
            **kwargs,
        )


@dataclass(frozen=True)
class CacheEntry:
    """One cached reading. Replaced wholesale, never mutated."""

    snapshot: RateSnapshot
    fetched_at_ms: int

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.fetched_at_ms


@dataclass(frozen=True)
class RatesResponse:
    """Uniform envelope returned by the rate endpoint."""

    success: bool
    data: RateSnapshot | None = None
    cached: bool | None = None
    fallback: bool | None = None
    error: str | None = None
    status: int = 200

    @classmethod
    def live(cls, snapshot: RateSnapshot) -> RatesResponse:
        return cls(success=True, data=snapshot, cached=False)

    @classmethod
    def from_cache(cls, snapshot: RateSnapshot) -> RatesResponse:
        return cls(success=True, data=snapshot, cached=True)

    @classmethod
    def from_fallback(cls, snapshot: RateSnapshot) -> RatesResponse:
        return cls(success=True, data=snapshot, cached=True, fallback=True)

    @classmethod
    def unavailable(cls, message: str = "Unable to fetch rates", status: int = 500) -> RatesResponse:
        return cls(success=False, error=message, status=status)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            body["data"] = self.data.to_dict()
        if self.cached is not None:
            body["cached"] = self.cached
        if self.fallback is not None:
            body["fallback"] = self.fallback
        if self.error is not None:
            body["error"] = self.error
        return body
