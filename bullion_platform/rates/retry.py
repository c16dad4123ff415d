"""Generic bounded exponential-backoff executor.

The executor knows nothing about what the operation returns or why it
failed: every ``Exception`` is retried the same way. The delay before retry
``n`` (0-based) is ``initial_delay * 2 ** n`` seconds with no jitter, so the
defaults wait 1s, 2s and 4s across four attempts.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from bullion_platform.rates.errors import RatesCancelledError

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
RetryObserver = Callable[[int, float, Exception], None]

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0


def backoff_delays(max_retries: int, initial_delay: float) -> list[float]:
    """The waits ``retry_with_backoff`` performs when every attempt fails."""
    return [initial_delay * 2**attempt for attempt in range(max_retries)]


async def retry_with_backoff(
    op: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    cancel_event: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
    on_retry: RetryObserver | None = None,
) -> T:
    """Run *op*, retrying up to *max_retries* times (``max_retries + 1`` attempts).

    After the last attempt fails its exception is re-raised unchanged. If
    *cancel_event* is set before an attempt or while waiting between
    attempts, ``RatesCancelledError`` is raised immediately. *on_retry* is
    called with ``(attempt, delay, exc)`` before each wait.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    if initial_delay < 0:
        raise ValueError("initial_delay must be >= 0")

    attempt = 0
    while True:
        _raise_if_cancelled(cancel_event)
        try:
            return await op()
        except Exception as exc:
            if attempt >= max_retries:
                raise
            delay = initial_delay * 2**attempt
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            await _wait(delay, cancel_event, sleep)
            attempt += 1


def _raise_if_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RatesCancelledError("Retry cancelled")


async def _wait(delay: float, cancel_event: asyncio.Event | None, sleep: Sleep) -> None:
    if cancel_event is None:
        await sleep(delay)
        return

    _raise_if_cancelled(cancel_event)
    sleeper = asyncio.ensure_future(sleep(delay))
    watcher = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, watcher):
            if not task.done():
                task.cancel()
        await asyncio.gather(sleeper, watcher, return_exceptions=True)
    # Cancellation wins a tie with the timer.
    _raise_if_cancelled(cancel_event)
