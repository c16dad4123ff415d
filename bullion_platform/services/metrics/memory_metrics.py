from __future__ import annotations

from bullion_platform.services.metrics.interface import MetricsInterface


def _series(name: str, tags: dict[str, str] | None) -> str:
    if not tags:
        return name
    labels = ",".join(f"{k}={tags[k]}" for k in sorted(tags))
    return f"{name}{{{labels}}}"


class MemoryMetrics(MetricsInterface):
    """In-memory metrics for test assertions on metric values.

    ``counters``/``gauges``/``histograms`` are keyed by bare metric name
    (tags summed together); ``series`` keeps the per-tag breakdown, keyed
    ``name{k=v,...}``.
    """

    def __init__(self) -> None:
        self.counters: dict[str, float] = {}
        self.gauges: dict[str, float] = {}
        self.histograms: dict[str, list[float]] = {}
        self.series: dict[str, float] = {}

    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        self.counters[name] = self.counters.get(name, 0) + value
        key = _series(name, tags)
        self.series[key] = self.series.get(key, 0) + value

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.gauges[name] = value
        self.series[_series(name, tags)] = value

    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.histograms.setdefault(name, []).append(value)

    def count(self, name: str, **tags: str) -> float:
        """Counter value for one tag combination (or the total when no tags given)."""
        if not tags:
            return self.counters.get(name, 0)
        return self.series.get(_series(name, tags), 0)
