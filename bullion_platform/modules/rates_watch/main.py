"""Rates Watch worker.

Runs the client-side rate store against a Rates API endpoint, exactly as a
storefront widget would: demo rates until the first fetch lands, throttled
manual refreshes, a fixed auto-refresh interval and last-good-rates on
failure. Every state change is logged and mirrored into gauges.
"""

from __future__ import annotations

from bullion_platform.config.context import ModuleConfig
from bullion_platform.modules.base import AsyncModule
from bullion_platform.rates.client_store import ClientRateStore, RatesEndpointClient, RatesState
from bullion_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from bullion_platform.services.logger.factory import LoggerFactory
from bullion_platform.services.logger.interface import LoggingInterface
from bullion_platform.services.metrics.interface import MetricsInterface

DEFAULT_ENDPOINT = "http://localhost:8004/api/v1/rates"


class RatesWatchModule(AsyncModule):
    log: LoggingInterface
    store: ClientRateStore

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        lifecycle: LifecycleManager,
        metrics: MetricsInterface,
    ) -> None:
        self.config = config
        self.logger = logger
        self.lifecycle = lifecycle
        self.metrics = metrics
        self._last_timestamp: str | None = None

    async def initialize(self) -> None:
        self.log = self.logger.for_component("rates_watch")
        self.endpoint_url = self.config.get_str("endpoint-url", DEFAULT_ENDPOINT)
        locality = self.config.get_str("locality")

        self.endpoint = RatesEndpointClient(self.endpoint_url)
        self.store = ClientRateStore(
            self.endpoint,
            self.logger.for_component("rates_store"),
            locality=locality,
            throttle_seconds=self.config.get_float("throttle-seconds", 60),
            refresh_interval=self.config.get_float("refresh-interval", 300),
        )
        self.store.subscribe(self._on_state)
        self.log.info(
            "Rates Watch initialized",
            endpoint=self.endpoint_url,
            locality=locality,
            refresh_interval=self.store.refresh_interval,
        )

    async def validate(self) -> None:
        if self.store.refresh_interval <= 0:
            raise ValueError("--refresh-interval must be positive")
        if self.store.throttle_seconds < 0:
            raise ValueError("--throttle-seconds must be >= 0")

    async def execute(self) -> int:
        self.store.start()
        await self.lifecycle.wait_for_shutdown()
        return 0

    async def teardown(self) -> None:
        await self.store.stop()
        await self.endpoint.close()
        self.log.info("Rates Watch stopped")

    def _on_state(self, state: RatesState) -> None:
        if state.loading:
            return
        self.metrics.gauge("rates_watch_stale", 1 if state.error else 0)
        if state.error:
            return

        rates = state.rates
        self.metrics.gauge("rates_watch_fallback", 1 if state.is_fallback else 0)
        self.metrics.gauge("rates_watch_gold_24k", rates.gold24k, tags={"locality": rates.locality})
        self.metrics.gauge(
            "rates_watch_silver_per_gram", rates.silver_per_gram, tags={"locality": rates.locality}
        )
        if rates.timestamp != self._last_timestamp:
            self._last_timestamp = rates.timestamp
            self.log.info(
                "Rates updated",
                locality=rates.locality,
                gold24k=rates.gold24k,
                gold22k=round(rates.gold22k, 2),
                silver_per_gram=rates.silver_per_gram,
                fallback=state.is_fallback,
                timestamp=rates.timestamp,
            )


module_class = RatesWatchModule
