"""Sync Secrets Kubernetes operator.

Kopf glue around the reconciliation engine: event handlers, dispatch with
per-secret serialization and retries, and the operator entry point.
"""

from importlib import import_module
from types import ModuleType

from sync_secrets.k8s_operator.dispatcher import ReconcileDispatcher


def __getattr__(name: str) -> ModuleType:
    """Lazy-load the handlers so importing the dispatcher registers nothing."""
    if name == "handlers":
        return import_module("sync_secrets.k8s_operator.handlers")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["ReconcileDispatcher", "handlers"]
