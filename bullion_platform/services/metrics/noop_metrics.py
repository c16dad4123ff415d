from bullion_platform.services.metrics.interface import MetricsInterface


class NoopMetrics(MetricsInterface):
    """Drops every sample.

    Registered by the runner when no ``--metrics`` backend is selected, and
    used by the rate service and persistence gateway when built without one.
    """

    def counter(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        return None

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        return None

    def histogram(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        return None
