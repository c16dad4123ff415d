"""Rates API service.

Serves the storefront's live metal rates. Every request goes through
``RateCacheService``: cache, then upstream with retries, then the last
persisted reading.

Endpoints::

    GET /api/v1/rates[?locality=India]  - rate envelope (200, 500 when no data, 503 while stopping)
    GET /api/v1/health                  - service status and cache age
"""

from __future__ import annotations

import json
import re
import time

from aiohttp import web

from bullion_platform.config.context import ModuleConfig
from bullion_platform.migrations.runner import MigrationRunner
from bullion_platform.modules.base import AsyncModule
from bullion_platform.rates.persistence import RatePersistenceGateway
from bullion_platform.rates.service import RateCacheService
from bullion_platform.rates.settings import RatesSettings
from bullion_platform.rates.upstream import UpstreamRateClient
from bullion_platform.services.database.interface import DatabaseInterface
from bullion_platform.services.health.health_server import HealthCheckServer
from bullion_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from bullion_platform.services.logger.factory import LoggerFactory
from bullion_platform.services.logger.interface import LoggingInterface
from bullion_platform.services.metrics.interface import MetricsInterface
from bullion_platform.services.secrets.interface import SecretsInterface

_LOCALITY = re.compile(r"^[A-Za-z][A-Za-z .'-]{0,63}$")


class RatesApiModule(AsyncModule):
    log: LoggingInterface
    service: RateCacheService

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        db: DatabaseInterface,
        lifecycle: LifecycleManager,
        metrics: MetricsInterface,
        secrets: SecretsInterface,
        health: HealthCheckServer | None = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self.db = db
        self.lifecycle = lifecycle
        self.metrics = metrics
        self.secrets = secrets
        self.health = health
        self._runner: web.AppRunner | None = None

    async def initialize(self) -> None:
        self.log = self.logger.for_component("rates_api")
        self.port = self.config.get_int("port", 8004)
        self.settings = RatesSettings.from_secrets(self.secrets)
        await self.db.connect_async()
        if self.config.get_bool("auto-migrate"):
            applied = await MigrationRunner(self.db).up()
            self.log.info("Migrations applied", count=len(applied))

        self.service = RateCacheService(
            UpstreamRateClient(self.settings),
            RatePersistenceGateway(self.db, self.logger.for_component("rates_persistence"), self.metrics),
            self.settings,
            self.logger.for_component("rates_service"),
            self.metrics,
        )

        # Hooks run in reverse: stop serving, then drain the service, then the pool.
        self.lifecycle.on_shutdown(self.db.disconnect_async)
        self.lifecycle.on_shutdown(self.service.close)
        self.lifecycle.on_shutdown(self._stop_server)
        if self.health is not None:
            self.health.register_check("rates_service", lambda: self.service.accepting)

        self.log.info(
            "Rates API initialized",
            port=self.port,
            upstream=self.settings.upstream_url,
            locality=self.settings.locality,
        )

    async def execute(self) -> int:
        app = self._create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        self.log.info("Rates API listening", port=self.port)

        await self.lifecycle.wait_for_shutdown()
        return 0

    def _create_app(self) -> web.Application:
        app = web.Application(middlewares=[self._logging_middleware])
        app.router.add_get("/api/v1/rates", self._get_rates)
        app.router.add_get("/api/v1/health", self._get_health)
        return app

    @web.middleware
    async def _logging_middleware(self, request: web.Request, handler):
        start = time.monotonic()
        status = 500
        try:
            response = await handler(request)
            status = response.status
            return response
        except web.HTTPException as exc:
            status = exc.status
            raise
        finally:
            self.log.info(
                "Request handled",
                method=request.method,
                path=request.path,
                status=status,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )

    async def _get_rates(self, request: web.Request) -> web.Response:
        locality = request.query.get("locality", "").strip() or None
        if locality is not None and not _LOCALITY.match(locality):
            raise web.HTTPBadRequest(
                text=json.dumps({"success": False, "error": "invalid locality"}),
                content_type="application/json",
            )
        result = await self.service.get_rates(locality)
        return web.json_response(result.to_dict(), status=result.status)

    async def _get_health(self, request: web.Request) -> web.Response:
        age = self.service.cache_age_seconds()
        return web.json_response({
            "status": "ok" if self.service.accepting else "stopping",
            "db_connected": self.db.is_connected(),
            "locality": self.settings.locality,
            "cache_age_seconds": None if age is None else round(age, 1),
        })

    async def _stop_server(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None


module_class = RatesApiModule
