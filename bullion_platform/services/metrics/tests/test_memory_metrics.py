from bullion_platform.services.metrics.memory_metrics import MemoryMetrics


def test_counter_increments():
    m = MemoryMetrics()
    m.counter("rates_cache_hits_total")
    m.counter("rates_cache_hits_total")
    m.counter("rates_cache_hits_total", value=3)
    assert m.counters["rates_cache_hits_total"] == 5


def test_counter_series_by_tags():
    m = MemoryMetrics()
    m.counter("rates_persistence_errors_total", tags={"operation": "read"})
    m.counter("rates_persistence_errors_total", tags={"operation": "write"})
    m.counter("rates_persistence_errors_total", tags={"operation": "write"})
    assert m.count("rates_persistence_errors_total") == 3
    assert m.count("rates_persistence_errors_total", operation="write") == 2
    assert m.count("rates_persistence_errors_total", operation="read") == 1


def test_gauge_sets_value():
    m = MemoryMetrics()
    m.gauge("rates_cache_age_seconds", 12.0)
    m.gauge("rates_cache_age_seconds", 30.0)
    assert m.gauges["rates_cache_age_seconds"] == 30.0


def test_histogram_records_values():
    m = MemoryMetrics()
    m.histogram("rates_upstream_fetch_seconds", 0.2)
    m.histogram("rates_upstream_fetch_seconds", 1.4)
    assert m.histograms["rates_upstream_fetch_seconds"] == [0.2, 1.4]


def test_missing_counter_is_zero():
    assert MemoryMetrics().count("rates_fallback_total") == 0


def test_timed_records_even_when_block_raises():
    m = MemoryMetrics()
    with m.timed("rates_upstream_fetch_seconds"):
        pass
    try:
        with m.timed("rates_upstream_fetch_seconds"):
            raise RuntimeError("upstream down")
    except RuntimeError:
        pass
    samples = m.histograms["rates_upstream_fetch_seconds"]
    assert len(samples) == 2
    assert all(s >= 0 for s in samples)
