"""Operator lifecycle handlers and health probes.

Startup builds the shared dependencies (cluster client, registry, sync
context and dispatcher) and stores them in kopf's ``memo``; cleanup cancels
pending retries.
"""

from __future__ import annotations

from typing import Any

import kopf

from sync_secrets.config.settings import get_settings
from sync_secrets.controller import SyncContext
from sync_secrets.k8s_operator.dispatcher import ReconcileDispatcher
from sync_secrets.kubernetes.client import get_cluster_client
from sync_secrets.observability.logging import get_logger
from sync_secrets.observability.metrics import get_metrics, start_metrics_server
from sync_secrets.registry import Registry
from sync_secrets.version import __version__


log = get_logger(__name__)


@kopf.on.startup()
async def startup_handler(
    settings: kopf.OperatorSettings,
    memo: kopf.Memo,
    **_kwargs: Any,
) -> None:
    """Configure kopf and build the reconciliation context."""
    app_settings = get_settings()

    settings.watching.server_timeout = app_settings.kubernetes.api_timeout
    settings.watching.client_timeout = app_settings.kubernetes.api_timeout + 10

    metrics = get_metrics(enabled=app_settings.observability.metrics_enabled)
    metrics.set_build_info(__version__)
    if app_settings.observability.metrics_enabled:
        start_metrics_server(app_settings.observability.metrics_port)
        log.info("metrics_server_started", port=app_settings.observability.metrics_port)

    ctx = SyncContext.from_settings(
        get_cluster_client(),
        registry=Registry(),
        settings=app_settings,
        metrics=metrics,
    )
    memo.context = ctx
    memo.dispatcher = ReconcileDispatcher(ctx)

    log.info(
        "sync_secrets_operator_starting",
        version=__version__,
        environment=app_settings.environment,
        ignored_namespaces=sorted(ctx.ignored_namespaces),
        protected_labels=list(ctx.protected_labels),
        protected_annotations=list(ctx.protected_annotations),
        requeue_after=ctx.requeue_after,
    )


@kopf.on.cleanup()
async def cleanup_handler(memo: kopf.Memo, **_kwargs: Any) -> None:
    """Cancel pending retries when the operator shuts down."""
    dispatcher: ReconcileDispatcher | None = memo.get("dispatcher")
    if dispatcher is not None:
        await dispatcher.cancel_all()
    log.info("sync_secrets_operator_shutting_down")


# ============================================================================
# Probes
# ============================================================================


@kopf.on.probe(id="registered_owners")
def registered_owners_probe(memo: kopf.Memo, **_kwargs: Any) -> int:
    """Number of owner secrets currently registered."""
    ctx: SyncContext | None = memo.get("context")
    return len(ctx.registry) if ctx is not None else 0


@kopf.on.probe(id="owned_secrets")
def owned_secrets_probe(memo: kopf.Memo, **_kwargs: Any) -> int:
    """Number of replicas currently registered."""
    ctx: SyncContext | None = memo.get("context")
    return ctx.registry.owned_secret_count() if ctx is not None else 0


@kopf.on.probe(id="pending_retries")
def pending_retries_probe(memo: kopf.Memo, **_kwargs: Any) -> int:
    """Number of reconciliations waiting for a retry."""
    dispatcher: ReconcileDispatcher | None = memo.get("dispatcher")
    return dispatcher.pending_retries if dispatcher is not None else 0


__all__ = [
    "cleanup_handler",
    "owned_secrets_probe",
    "pending_retries_probe",
    "registered_owners_probe",
    "startup_handler",
]
