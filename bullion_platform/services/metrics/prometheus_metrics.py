"""Prometheus metrics implementation using prometheus_client."""

from __future__ import annotations

from bullion_platform.services.metrics.interface import MetricsInterface
from bullion_platform.services.secrets.interface import SecretsInterface

# Help strings for the series the rate service emits; anything else falls
# back to its own name.
_DESCRIPTIONS: dict[str, str] = {
    "rates_requests_total": "Rate endpoint requests served",
    "rates_cache_hits_total": "Requests answered from the in-memory rate cache",
    "rates_cache_misses_total": "Requests that required an upstream refresh",
    "rates_upstream_failures_total": "Upstream refreshes that failed after all retries",
    "rates_upstream_retries_total": "Individual upstream retry attempts",
    "rates_fallback_total": "Responses served from the last persisted reading",
    "rates_unavailable_total": "Requests that could not be served at all",
    "rates_persistence_errors_total": "Swallowed persistence read/write failures",
    "rates_upstream_fetch_seconds": "Wall time of an upstream refresh including retries",
    "rates_watch_gold_24k": "Last 24k gold price per gram seen by the watcher",
    "rates_watch_silver_per_gram": "Last silver price per gram seen by the watcher",
    "rates_watch_stale": "1 while the watcher is showing rates from before a failed refresh",
    "rates_watch_fallback": "1 while the rate service is serving persisted rates",
}


def _label_names(tags: dict[str, str] | None) -> list[str]:
    return sorted(tags.keys()) if tags else []


def _label_values(names: list[str], tags: dict[str, str] | None) -> list[str]:
    if not tags:
        return []
    return [tags[n] for n in names]


class PrometheusMetrics(MetricsInterface):
    """Metrics backend that exposes metrics via Prometheus HTTP endpoint.

    Config (via secrets):
        METRICS_PROMETHEUS_PORT - Port to expose /metrics on (default: 9091).
                                  Set to 0 or empty to disable the HTTP server.
        METRICS_NAMESPACE       - Prefix added to every metric (default: bullion).
    """

    def __init__(self, secrets: SecretsInterface) -> None:
        import prometheus_client as prom

        self._prom = prom
        self._namespace = secrets.get_or_default("METRICS_NAMESPACE", "bullion")
        self._counters: dict[str, prom.Counter] = {}
        self._gauges: dict[str, prom.Gauge] = {}
        self._histograms: dict[str, prom.Histogram] = {}

        port = secrets.get_int("METRICS_PROMETHEUS_PORT", 9091)
        if port:
            prom.start_http_server(port)

    @staticmethod
    def _sanitize(name: str) -> str:
        return name.replace("-", "_").replace(".", "_")

    def _key(self, name: str, label_names: list[str]) -> tuple[str, str]:
        safe = self._sanitize(name)
        return safe, f"{safe}:{','.join(label_names)}"

    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        label_names = _label_names(tags)
        safe, key = self._key(name, label_names)
        if key not in self._counters:
            self._counters[key] = self._prom.Counter(
                safe, _DESCRIPTIONS.get(name, safe), label_names, namespace=self._namespace
            )
        c = self._counters[key]
        if label_names:
            c.labels(*_label_values(label_names, tags)).inc(value)
        else:
            c.inc(value)

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        label_names = _label_names(tags)
        safe, key = self._key(name, label_names)
        if key not in self._gauges:
            self._gauges[key] = self._prom.Gauge(
                safe, _DESCRIPTIONS.get(name, safe), label_names, namespace=self._namespace
            )
        g = self._gauges[key]
        if label_names:
            g.labels(*_label_values(label_names, tags)).set(value)
        else:
            g.set(value)

    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        label_names = _label_names(tags)
        safe, key = self._key(name, label_names)
        if key not in self._histograms:
            self._histograms[key] = self._prom.Histogram(
                safe, _DESCRIPTIONS.get(name, safe), label_names, namespace=self._namespace
            )
        h = self._histograms[key]
        if label_names:
            h.labels(*_label_values(label_names, tags)).observe(value)
        else:
            h.observe(value)
