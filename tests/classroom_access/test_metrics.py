"""Tests for reconciliation counters."""

import threading

from prometheus_client import CollectorRegistry

from src.classroom_access.metrics import (
    MetricsSnapshot,
    ReconciliationMetrics,
    get_metrics,
)


def test_counters_start_at_zero(metrics):
    assert metrics.snapshot() == MetricsSnapshot(processed=0, success=0, failed=0)


def test_record_methods_increment_counters(metrics):
    metrics.record_processed()
    metrics.record_processed()
    metrics.record_success()
    metrics.record_failed()

    assert metrics.snapshot().to_dict() == {"processed": 2, "success": 1, "failed": 1}


def test_registries_are_isolated():
    first = ReconciliationMetrics(registry=CollectorRegistry())
    second = ReconciliationMetrics(registry=CollectorRegistry())

    first.record_processed()

    assert first.snapshot().processed == 1
    assert second.snapshot().processed == 0


def test_prometheus_output_names(metrics):
    metrics.record_processed()

    output = metrics.generate_output().decode("utf-8")

    assert "webhook_processed_total 1.0" in output
    assert "webhook_success_total 0.0" in output
    assert "webhook_failed_total 0.0" in output


def test_uptime_gauge_is_exported(metrics):
    metrics.started_at -= 90

    output = metrics.generate_output().decode("utf-8")
    value = metrics.registry.get_sample_value("process_uptime_seconds")

    assert "# TYPE process_uptime_seconds gauge" in output
    assert value >= 90


def test_increments_from_many_threads_are_not_lost(metrics):
    def worker():
        for _ in range(500):
            metrics.record_processed()
            metrics.record_success()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = metrics.snapshot()
    assert snapshot.processed == 4000
    assert snapshot.success == 4000


def test_get_metrics_with_registry_returns_fresh_instance():
    registry = CollectorRegistry()

    instance = get_metrics(registry)

    assert instance.registry is registry
    assert get_metrics(CollectorRegistry()) is not instance
