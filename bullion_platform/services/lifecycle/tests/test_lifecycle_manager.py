"""Tests for LifecycleManager."""

from __future__ import annotations

import asyncio

from bullion_platform.services.health.health_server import HealthCheckServer
from bullion_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from bullion_platform.services.logger.memory_logger import MemoryLogger


async def test_hooks_execute_in_reverse_order() -> None:
    lm = LifecycleManager()
    order: list[str] = []
    lm.on_shutdown(lambda: order.append("A"))
    lm.on_shutdown(lambda: order.append("B"))
    lm.on_shutdown(lambda: order.append("C"))
    await lm.shutdown()
    assert order == ["C", "B", "A"]


async def test_hook_failure_is_logged_and_does_not_block_others() -> None:
    log = MemoryLogger()
    lm = LifecycleManager(log=log)
    calls: list[str] = []
    lm.on_shutdown(lambda: calls.append("first"))

    def failing_hook() -> None:
        raise RuntimeError("boom")

    lm.on_shutdown(failing_hook)
    lm.on_shutdown(lambda: calls.append("last"))
    await lm.shutdown()
    assert calls == ["last", "first"]
    errors = log.at_level("error")
    assert errors[0].msg == "Shutdown hook failed"
    assert "boom" in errors[0].ctx["error"]


async def test_async_hooks_awaited() -> None:
    lm = LifecycleManager()
    result: list[str] = []

    async def async_hook() -> None:
        result.append("async_done")

    lm.on_shutdown(async_hook)
    await lm.shutdown()
    assert result == ["async_done"]


async def test_slow_hook_times_out() -> None:
    log = MemoryLogger()
    lm = LifecycleManager(drain_timeout=0.05, log=log)
    lm.on_shutdown(lambda: asyncio.sleep(10))
    await asyncio.wait_for(lm.shutdown(), timeout=2)
    assert log.at_level("error")[0].msg == "Shutdown hook failed"


async def test_is_shutting_down_flag() -> None:
    lm = LifecycleManager()
    assert not lm.is_shutting_down
    await lm.shutdown()
    assert lm.is_shutting_down


async def test_signal_requests_shutdown_without_running_hooks() -> None:
    lm = LifecycleManager(log=MemoryLogger())
    ran: list[str] = []
    lm.on_shutdown(lambda: ran.append("hook"))
    waiter = asyncio.ensure_future(lm.wait_for_shutdown())
    lm._trigger_shutdown_from_signal()
    await asyncio.wait_for(waiter, timeout=1)
    assert lm.is_shutting_down
    assert ran == []
    await lm.shutdown()
    assert ran == ["hook"]


async def test_health_server_marked_not_ready() -> None:
    lm = LifecycleManager()
    hs = HealthCheckServer(port=0)
    lm.set_health_server(hs)
    assert hs._ready is True
    await lm.shutdown()
    assert hs._ready is False


async def test_double_shutdown_is_safe() -> None:
    lm = LifecycleManager()
    count = 0

    def hook() -> None:
        nonlocal count
        count += 1

    lm.on_shutdown(hook)
    await lm.shutdown()
    await lm.shutdown()
    assert count == 1
