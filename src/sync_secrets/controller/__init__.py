"""Sync Secrets controller package.

Annotation policy, replica metadata, synchronization engine and the three
reconciliation entry points.
"""

from sync_secrets.controller.context import SyncContext
from sync_secrets.controller.reconcilers import (
    ReconcileKind,
    ReconcileResult,
    ReconcileStatus,
    reconcile_namespace,
    reconcile_owned_secret,
    reconcile_secret,
)


__all__ = [
    "ReconcileKind",
    "ReconcileResult",
    "ReconcileStatus",
    "SyncContext",
    "reconcile_namespace",
    "reconcile_owned_secret",
    "reconcile_secret",
]
