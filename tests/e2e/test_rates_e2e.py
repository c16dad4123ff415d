"""In-process E2E tests.

The whole chain runs inside one event loop:

  fake upstream provider ──► RatesApiModule (real aiohttp app, memory DB)
                                   ▲
                                   └── ClientRateStore + RatesEndpointClient (real HTTP)

Scenarios cover the storefront's view of the system: live rates, the
persisted fallback when the provider goes down, the 500 when nothing has
ever been stored, and the client keeping its last good rates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator

import pytest
from aiohttp.test_utils import TestServer

from bullion_platform.config.context import ModuleConfig
from bullion_platform.modules.rates_api.main import RatesApiModule
from bullion_platform.rates.client_store import ClientRateStore, RatesEndpointClient
from bullion_platform.services.database.memory_database import MemoryDatabase
from bullion_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from bullion_platform.services.logger.factory import LoggerFactory
from bullion_platform.services.logger.memory_logger import MemoryLogger
from bullion_platform.services.metrics.memory_metrics import MemoryMetrics
from bullion_platform.services.secrets.env_secrets import EnvSecrets
from tests.helpers.fake_upstream import FakeUpstream


@dataclass
class Stack:
    upstream: FakeUpstream
    api: RatesApiModule
    store: ClientRateStore
    db: MemoryDatabase

    async def restart_api(self) -> None:
        """Simulate a process restart: fresh in-memory cache, same database."""
        await self.api.service.close()
        await self.api.initialize()


def _build_module(upstream: FakeUpstream, db: MemoryDatabase) -> RatesApiModule:
    return RatesApiModule(
        config=ModuleConfig({"port": 0}),
        logger=LoggerFactory(default_impl="memory"),
        db=db,
        lifecycle=LifecycleManager(),
        metrics=MemoryMetrics(),
        secrets=EnvSecrets(overrides={
            "RATES_UPSTREAM_URL": upstream.url,
            "RATES_UPSTREAM_API_KEY": "e2e-key",
            "RATES_BACKOFF_BASE_MS": "1",
        }),
    )


@pytest.fixture
async def stack(fake_upstream: FakeUpstream) -> AsyncIterator[Stack]:
    db = MemoryDatabase()
    api = _build_module(fake_upstream, db)
    await api.initialize()
    server = TestServer(api._create_app())
    await server.start_server()

    endpoint = RatesEndpointClient(str(server.make_url("/api/v1/rates")))
    store = ClientRateStore(endpoint, MemoryLogger(), throttle_seconds=0)
    try:
        yield Stack(upstream=fake_upstream, api=api, store=store, db=db)
    finally:
        await store.stop()
        await endpoint.close()
        await server.close()
        await api.lifecycle.shutdown()


async def _drain_background(api: RatesApiModule) -> None:
    if api.service._background:
        await asyncio.gather(*list(api.service._background))


async def test_live_rates_reach_the_client(stack: Stack) -> None:
    assert stack.store.state.rates.source == "Bullions.co.in"
    await stack.store.fetch_rates()

    state = stack.store.state
    assert state.error is None
    assert state.is_fallback is False
    assert state.rates.gold24k == 7450
    assert state.rates.gold22k == pytest.approx(6824.2)
    assert state.rates.silver_per_kg == pytest.approx(92500)
    assert stack.upstream.requests[0].query["key"] == "e2e-key"


async def test_fallback_after_restart_when_upstream_down(stack: Stack) -> None:
    stack.upstream.reply((200, {"gold": 7000, "silver": 88}))
    await stack.store.fetch_rates()
    await _drain_background(stack.api)

    stack.upstream.reply((503, "provider down"))
    await stack.restart_api()
    await stack.store.fetch_rates()

    state = stack.store.state
    assert state.error is None
    assert state.is_fallback is True
    assert state.rates.gold24k == 7000
    assert state.rates.silver_per_gram == 88


async def test_no_history_surfaces_error_and_keeps_demo_rates(stack: Stack) -> None:
    stack.upstream.reply((500, {"error": "down"}))
    demo = stack.store.state.rates
    await stack.store.fetch_rates()

    state = stack.store.state
    assert state.error == "Unable to fetch rates"
    assert state.rates == demo
    assert state.last_fetch_time_ms is None
    # initial attempt + 3 retries
    assert stack.upstream.calls == 4


async def test_cached_rates_survive_upstream_outage(stack: Stack) -> None:
    await stack.store.fetch_rates()
    stack.upstream.reply((500, "boom"))
    await stack.store.fetch_rates()

    state = stack.store.state
    assert state.error is None
    assert state.rates.gold24k == 7450
    assert stack.upstream.calls == 1
