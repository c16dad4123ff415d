from __future__ import annotations

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator


class MetricsInterface(ABC):
    """Counters, gauges and histograms keyed by name plus optional tags.

    Names follow Prometheus conventions (``*_total`` for counters,
    ``*_seconds`` for durations); backends add their own namespace.
    """

    @abstractmethod
    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        ...

    @abstractmethod
    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None: ...

    @abstractmethod
    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None: ...

    @contextmanager
    def timed(self, name: str, tags: dict[str, str] | None = None) -> Iterator[None]:
        """Record the wall time of the block as a histogram sample, even if it raises."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.histogram(name, time.perf_counter() - started, tags)
