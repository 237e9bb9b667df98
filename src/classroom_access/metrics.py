"""Prometheus metrics for invitation reconciliation.

Metrics Defined:
- webhook_processed_total: Repository-created events taken into processing
- webhook_success_total: Reconciliations (or invitees) that succeeded
- webhook_failed_total: Reconciliations (or invitees) that failed
- process_uptime_seconds: Seconds since the metrics were created

The reconciler only sees the narrow MetricsSink interface, so tests can
substitute a recorder and the counters stay the only shared mutable
state. prometheus_client counters increment under a lock, so concurrent
reconciliations never lose an increment.
"""

import time
from dataclasses import dataclass
from typing import Optional, Protocol

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)


class MetricsSink(Protocol):
    """Increment interface used by the reconciler."""

    def record_processed(self) -> None: ...

    def record_success(self) -> None: ...

    def record_failed(self) -> None: ...


@dataclass(frozen=True)
class MetricsSnapshot:
    """Read-only view of the reconciliation counters."""

    processed: int
    success: int
    failed: int

    def to_dict(self) -> dict:
        return {"processed": self.processed, "success": self.success, "failed": self.failed}


class ReconciliationMetrics:
    """Container for the reconciliation Prometheus counters.

    Supports custom registries so that tests get fresh counters.

    Example:
        >>> metrics = ReconciliationMetrics(registry=CollectorRegistry())
        >>> metrics.record_processed()
        >>> metrics.snapshot().processed
        1
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize the counters.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.processed_total = Counter(
            "webhook_processed",
            "Total number of repository created events processed",
            registry=self.registry,
        )
        self.success_total = Counter(
            "webhook_success",
            "Total number of successful webhook processings",
            registry=self.registry,
        )
        self.failed_total = Counter(
            "webhook_failed",
            "Total number of failed webhook processings",
            registry=self.registry,
        )

        self.started_at = time.monotonic()
        self.uptime_seconds = Gauge(
            "process_uptime_seconds",
            "Process uptime in seconds",
            registry=self.registry,
        )
        self.uptime_seconds.set_function(lambda: time.monotonic() - self.started_at)

    def record_processed(self) -> None:
        self.processed_total.inc()

    def record_success(self) -> None:
        self.success_total.inc()

    def record_failed(self) -> None:
        self.failed_total.inc()

    def snapshot(self) -> MetricsSnapshot:
        """Read the current counter values."""
        return MetricsSnapshot(
            processed=int(self.processed_total._value.get()),
            success=int(self.success_total._value.get()),
            failed=int(self.failed_total._value.get()),
        )

    def generate_output(self) -> bytes:
        """Render this registry in the Prometheus text format."""
        return generate_latest(self.registry)


# Global metrics instance for the default registry
_default_metrics: Optional[ReconciliationMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> ReconciliationMetrics:
    """Get or create the reconciliation metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.
    """
    global _default_metrics

    if registry is not None:
        return ReconciliationMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = ReconciliationMetrics()

    return _default_metrics
