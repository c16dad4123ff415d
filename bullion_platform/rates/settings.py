from __future__ import annotations

from dataclasses import dataclass

from bullion_platform.services.secrets.interface import SecretsInterface

DEFAULT_UPSTREAM_URL = "https://bullions.co.in/api/rates"
DEFAULT_PROVIDER_NAME = "Bullions.co.in"
DEFAULT_LOCALITY = "India"


@dataclass(frozen=True)
class RatesSettings:
    """Tunables for the rate service, all overridable from the environment.

    Environment keys::

        RATES_UPSTREAM_URL                 RATES_CACHE_TTL_MARKET_SECONDS
        RATES_UPSTREAM_API_KEY             RATES_CACHE_TTL_OFF_HOURS_SECONDS
        RATES_UPSTREAM_TIMEOUT_SECONDS     RATES_MAX_RETRIES
        RATES_PROVIDER_NAME                RATES_BACKOFF_BASE_MS
        RATES_LOCALITY
    """

    upstream_url: str = DEFAULT_UPSTREAM_URL
    api_key: str | None = None
    upstream_timeout: float = 10.0
    provider_name: str = DEFAULT_PROVIDER_NAME
    locality: str = DEFAULT_LOCALITY
    market_ttl_seconds: float = 5 * 60
    off_hours_ttl_seconds: float = 30 * 60
    max_retries: int = 3
    backoff_base_ms: float = 1000

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("RATES_MAX_RETRIES must be >= 0")
        if self.backoff_base_ms < 0:
            raise ValueError("RATES_BACKOFF_BASE_MS must be >= 0")
        if self.market_ttl_seconds <= 0 or self.off_hours_ttl_seconds <= 0:
            raise ValueError("cache TTLs must be positive")
        if not self.upstream_url:
            raise ValueError("RATES_UPSTREAM_URL must not be empty")

    @property
    def backoff_base_seconds(self) -> float:
        return self.backoff_base_ms / 1000

    @classmethod
    def from_secrets(cls, secrets: SecretsInterface) -> RatesSettings:
        api_key = secrets.get("RATES_UPSTREAM_API_KEY")
        return cls(
            upstream_url=secrets.get_or_default("RATES_UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
            api_key=api_key or None,
            upstream_timeout=secrets.get_float("RATES_UPSTREAM_TIMEOUT_SECONDS", 10.0),
            provider_name=secrets.get_or_default("RATES_PROVIDER_NAME", DEFAULT_PROVIDER_NAME),
            locality=secrets.get_or_default("RATES_LOCALITY", DEFAULT_LOCALITY),
            market_ttl_seconds=secrets.get_float("RATES_CACHE_TTL_MARKET_SECONDS", 5 * 60),
            off_hours_ttl_seconds=secrets.get_float("RATES_CACHE_TTL_OFF_HOURS_SECONDS", 30 * 60),
            max_retries=secrets.get_int("RATES_MAX_RETRIES", 3),
            backoff_base_ms=secrets.get_float("RATES_BACKOFF_BASE_MS", 1000),
        )
