from __future__ import annotations

import pytest

from bullion_platform.config.container import Container
from bullion_platform.services.metrics.interface import MetricsInterface
from bullion_platform.services.metrics.memory_metrics import MemoryMetrics


class UpstreamStub:
    pass


class NoDeps:
    def __init__(self) -> None:
        self.value = 42


class WithUpstream:
    def __init__(self, upstream: UpstreamStub) -> None:
        self.upstream = upstream


class WithOptionalMetrics:
    def __init__(self, upstream: UpstreamStub, metrics: MetricsInterface | None = None) -> None:
        self.upstream = upstream
        self.metrics = metrics


class MissingHint:
    def __init__(self, upstream) -> None:  # noqa: ANN001
        self.upstream = upstream


def test_resolve_injected_instance():
    container = Container()
    upstream = UpstreamStub()
    container.register_instance(UpstreamStub, upstream)
    obj = container.resolve(WithUpstream)
    assert obj.upstream is upstream


def test_resolve_no_dependencies():
    container = Container()
    assert container.resolve(NoDeps).value == 42


def test_raises_on_missing_registration():
    container = Container()
    with pytest.raises(TypeError, match="No registration found for type 'UpstreamStub'"):
        container.resolve(WithUpstream)


def test_raises_on_missing_type_hint():
    container = Container()
    with pytest.raises(TypeError, match="has no type hint"):
        container.resolve(MissingHint)


def test_optional_parameter_left_at_default_when_unregistered():
    container = Container()
    container.register_instance(UpstreamStub, UpstreamStub())
    obj = container.resolve(WithOptionalMetrics)
    assert obj.metrics is None


def test_optional_union_resolves_registered_member():
    container = Container()
    metrics = MemoryMetrics()
    container.register_instance(UpstreamStub, UpstreamStub())
    container.register_instance(MetricsInterface, metrics)
    obj = container.resolve(WithOptionalMetrics)
    assert obj.metrics is metrics


def test_get_and_has():
    container = Container()
    assert container.has(UpstreamStub) is False
    with pytest.raises(KeyError):
        container.get(UpstreamStub)
    upstream = UpstreamStub()
    container.register_instance(UpstreamStub, upstream)
    assert container.has(UpstreamStub) is True
    assert container.get(UpstreamStub) is upstream
