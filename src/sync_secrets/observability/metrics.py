"""Prometheus metrics for Sync Secrets.

Exposes metrics for monitoring reconciliation health and replica churn.
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)


class MetricsCollector:
    """Prometheus metrics collector for Sync Secrets.

    Provides metrics for:
    - Reconciliation outcomes and latency per entry point
    - Replica create/update/delete operations
    - Registry size
    """

    def __init__(
        self,
        namespace: str = "sync_secrets",
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Initialize metrics.

        Args:
            namespace: Prometheus namespace prefix for all metrics.
            registry: Collector registry, the default global one when omitted.
        """
        self.namespace = namespace
        registry = registry if registry is not None else REGISTRY

        self.info = Info(
            f"{namespace}_build",
            "Sync Secrets build information",
            registry=registry,
        )

        self.reconciliations_total = Counter(
            f"{namespace}_reconciliations_total",
            "Total reconciliations by entry point and result",
            ["kind", "result"],  # result: done, ignored, retry
            registry=registry,
        )

        self.reconcile_duration = Histogram(
            f"{namespace}_reconcile_duration_seconds",
            "Time spent in a reconciliation pass",
            ["kind"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry,
        )

        self.replica_operations_total = Counter(
            f"{namespace}_replica_operations_total",
            "Replica operations performed on the cluster",
            ["operation"],  # create, update, delete, skip
            registry=registry,
        )

        self.registered_owners = Gauge(
            f"{namespace}_registered_owners",
            "Number of owner secrets currently registered",
            registry=registry,
        )

        self.owned_secrets = Gauge(
            f"{namespace}_owned_secrets",
            "Number of replicas currently registered",
            registry=registry,
        )

    def set_build_info(self, version: str) -> None:
        """Set build information metrics.

        Args:
            version: Application version.
        """
        self.info.info({"version": version})

    def record_reconciliation(self, kind: str, result: str, duration_seconds: float) -> None:
        """Record a finished reconciliation pass.

        Args:
            kind: Entry point (secret, owned_secret, namespace).
            result: Outcome (done, ignored, retry).
            duration_seconds: Wall time of the pass.
        """
        self.reconciliations_total.labels(kind=kind, result=result).inc()
        self.reconcile_duration.labels(kind=kind).observe(duration_seconds)

    def record_replica_operation(self, operation: str) -> None:
        """Record a replica operation (create, update, delete, skip)."""
        self.replica_operations_total.labels(operation=operation).inc()

    def set_registry_size(self, owners: int, owned: int) -> None:
        """Publish the current registry size."""
        self.registered_owners.set(owners)
        self.owned_secrets.set(owned)


class _NullMetricsCollector(MetricsCollector):
    """Collector used when metrics are disabled; records into a private registry."""

    def __init__(self) -> None:
        super().__init__(registry=CollectorRegistry())


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics(enabled: bool = True) -> MetricsCollector:
    """Get the global metrics collector.

    Args:
        enabled: When False on first call, metrics are recorded into a
            private registry that is never exported.

    Returns:
        The global MetricsCollector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector() if enabled else _NullMetricsCollector()
    return _metrics


def start_metrics_server(port: int = 8080) -> None:
    """Start the Prometheus metrics HTTP server.

    Args:
        port: Port to serve metrics on.
    """
    start_http_server(port)
