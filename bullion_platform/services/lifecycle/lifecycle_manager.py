"""Centralized shutdown orchestration with signal handling and ordered cleanup hooks."""

from __future__ import annotations

import asyncio
import inspect
import signal
from typing import Awaitable, Callable, Union

from bullion_platform.services.health.health_server import HealthCheckServer
from bullion_platform.services.logger.interface import LoggingInterface

ShutdownHook = Union[Callable[[], None], Callable[[], Awaitable[None]]]


class LifecycleManager:
    def __init__(self, drain_timeout: float = 30.0, log: LoggingInterface | None = None) -> None:
        self._drain_timeout = drain_timeout
        self._log = log
        self._hooks: list[ShutdownHook] = []
        self._shutting_down = False
        self._shutdown_done = False
        self._health_server: HealthCheckServer | None = None
        self._stopped = asyncio.Event()

    @property
    def is_shutting_down(self) -> bool:
        """Modules can poll this to know if they should stop work."""
        return self._shutting_down

    def on_shutdown(self, callback: ShutdownHook) -> None:
        """Register a cleanup callback. Executed in reverse order on shutdown."""
        self._hooks.append(callback)

    def set_health_server(self, server: HealthCheckServer) -> None:
        """Link the health server so shutdown can mark it not-ready."""
        self._health_server = server

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route SIGTERM and SIGINT into ``shutdown()`` on *loop*."""
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._trigger_shutdown_from_signal)

    async def wait_for_shutdown(self) -> None:
        """Block until a shutdown has been requested."""
        await self._stopped.wait()

    def request_shutdown(self) -> None:
        self._shutting_down = True
        self._stopped.set()

    async def shutdown(self) -> None:
        """Execute the full shutdown sequence."""
        if self._shutdown_done:
            return
        self.request_shutdown()
        self._shutdown_done = True

        if self._health_server:
            self._health_server.mark_not_ready()

        # Reverse registration order: servers stop before the services they use.
        for hook in reversed(self._hooks):
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await asyncio.wait_for(result, timeout=self._drain_timeout)
            except Exception as exc:
                if self._log:
                    self._log.error(
                        "Shutdown hook failed",
                        hook=getattr(hook, "__qualname__", repr(hook)),
                        error=repr(exc),
                    )

        if self._health_server:
            await self._health_server.stop()

    def _trigger_shutdown_from_signal(self) -> None:
        # Hooks run from shutdown(), awaited by the runner once the module returns.
        if not self._shutting_down and self._log:
            self._log.info("Shutdown signal received")
        self.request_shutdown()
