"""Probe endpoints for orchestrators, served on their own port.

``/health/live`` always answers 200 while the process runs,
``/health/startup`` answers 200 once the module finished ``initialize()``,
``/health/ready`` runs every registered check and answers 503 if one fails
or the process is shutting down.
"""

from __future__ import annotations

from typing import Callable

from aiohttp import web

from bullion_platform.services.logger.interface import LoggingInterface


class HealthCheckServer:
    def __init__(self, port: int = 8080, log: LoggingInterface | None = None) -> None:
        self._port = port
        self._log = log
        self._checks: dict[str, Callable[[], bool]] = {}
        self._started = False
        self._ready = True
        self._runner: web.AppRunner | None = None

    def register_check(self, name: str, check: Callable[[], bool]) -> None:
        """Register a named readiness check (e.g. 'db', 'rates_cache')."""
        self._checks[name] = check

    def mark_started(self) -> None:
        self._started = True

    def mark_not_ready(self) -> None:
        self._ready = False

    async def start(self) -> None:
        self._runner = web.AppRunner(self._create_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self._port)
        await site.start()
        if self._log:
            self._log.info("Health server listening", port=self._port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    def _create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health/live", self._live)
        app.router.add_get("/health/ready", self._ready_probe)
        app.router.add_get("/health/startup", self._startup)
        return app

    async def _live(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _ready_probe(self, request: web.Request) -> web.Response:
        if not self._ready:
            return web.json_response({"status": "not ready", "reason": "shutting down"}, status=503)

        checks: dict[str, str] = {}
        all_ok = True
        for name, check_fn in self._checks.items():
            try:
                ok = check_fn()
            except Exception as exc:
                checks[name] = f"error: {exc}"
                all_ok = False
                if self._log:
                    self._log.warn("Readiness check raised", check=name, error=str(exc))
                continue
            checks[name] = "ok" if ok else "fail"
            all_ok = all_ok and bool(ok)

        if all_ok:
            return web.json_response({"status": "ok", "checks": checks})
        return web.json_response({"status": "not ready", "checks": checks}, status=503)

    async def _startup(self, request: web.Request) -> web.Response:
        if self._started:
            return web.json_response({"status": "ok"})
        return web.json_response({"status": "not started"}, status=503)
