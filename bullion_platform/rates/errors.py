"""Error taxonomy for the rate service.

``FetchError`` subclasses come from the upstream client and are retried;
``RatesCancelledError`` aborts a retry wait and is never retried or turned
into a fallback; ``PersistenceUnavailableError`` never leaves the gateway.
"""

from __future__ import annotations

from typing import Any


class RatesError(Exception):
    """Base class for every rate-service failure."""


class FetchError(RatesError):
    """The upstream provider could not produce a valid snapshot."""


class BadStatusError(FetchError):
    def __init__(self, status_code: int, *, payload: Any | None = None) -> None:
        super().__init__(f"Upstream responded with status {status_code}")
        self.status_code = status_code
        self.payload = payload


class MalformedPayloadError(FetchError):
    def __init__(self, message: str, *, payload: Any | None = None) -> None:
        super().__init__(message)
        self.payload = payload


class NetworkFailureError(FetchError):
    """Connection refused, DNS failure, timeout or a dropped response."""


class RatesCancelledError(RatesError):
    """A caller-provided cancel signal fired while waiting to retry."""


class PersistenceUnavailableError(RatesError):
    """The rate table could not be read or written."""


class RatesTransportError(RatesError):
    """Client side: the rate endpoint was unreachable or answered badly."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
