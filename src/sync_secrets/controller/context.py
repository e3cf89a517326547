"""Dependencies shared by every reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field

from sync_secrets.config.settings import Settings, get_settings
from sync_secrets.kubernetes.client import ClusterClient
from sync_secrets.observability.metrics import MetricsCollector
from sync_secrets.registry import Registry


@dataclass
class SyncContext:
    """Cluster client, registry and replication configuration.

    One instance is built at operator startup and handed to every
    reconciliation; tests build an isolated one per scenario.
    """

    client: ClusterClient
    registry: Registry = field(default_factory=Registry)
    ignored_namespaces: frozenset[str] = frozenset()
    protected_labels: tuple[str, ...] = ()
    protected_annotations: tuple[str, ...] = ()
    requeue_after: float = 5.0
    metrics: MetricsCollector | None = None

    @classmethod
    def from_settings(
        cls,
        client: ClusterClient,
        registry: Registry | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ) -> SyncContext:
        """Build a context from the replication settings."""
        sync = (settings or get_settings()).sync
        return cls(
            client=client,
            registry=registry if registry is not None else Registry(),
            ignored_namespaces=frozenset(sync.ignored_namespaces),
            protected_labels=tuple(sync.protected_labels),
            protected_annotations=tuple(sync.protected_annotations),
            requeue_after=sync.requeue_after,
            metrics=metrics,
        )

    def is_ignored(self, namespace: str) -> bool:
        """Return True if ``namespace`` is on the ignore list."""
        return namespace in self.ignored_namespaces

    def record_replica_operation(self, operation: str) -> None:
        if self.metrics is not None:
            self.metrics.record_replica_operation(operation)


__all__ = ["SyncContext"]
