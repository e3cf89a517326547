"""Reconciliation entry points.

Three triggers drive the synchronization engine:

- ``reconcile_secret``: an owner secret was created, updated or deleted
- ``reconcile_owned_secret``: a replica drifted or was deleted
- ``reconcile_namespace``: a namespace appeared, disappeared or was relabeled

Each returns a ``ReconcileResult``. This module is the single place where
synchronization errors become a retry or an ignore decision.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sync_secrets.constants import ORIGIN_NAMESPACE_LABEL
from sync_secrets.controller.context import SyncContext
from sync_secrets.controller.metadata import owner_reference
from sync_secrets.controller.sync import synchronize_owned_secret, synchronize_secret
from sync_secrets.errors import (
    AnnotationError,
    NoAnnotationError,
    RegistryError,
    SecretNotFoundError,
    SyncError,
    ensure_sync_error,
)
from sync_secrets.observability.logging import LogContext, get_logger
from sync_secrets.registry import NamespacedName, OwnerSecret


log = get_logger(__name__)


class ReconcileKind(str, Enum):
    """Reconciliation entry point."""

    SECRET = "secret"
    OWNED_SECRET = "owned_secret"
    NAMESPACE = "namespace"


class ReconcileStatus(str, Enum):
    """Outcome of a reconciliation pass."""

    DONE = "done"
    IGNORED = "ignored"
    RETRY = "retry"


@dataclass(frozen=True)
class ReconcileResult:
    """Result of a reconciliation pass."""

    status: ReconcileStatus
    requeue_after: float | None = None
    error: SyncError | None = None

    @classmethod
    def done(cls, error: SyncError | None = None) -> ReconcileResult:
        return cls(ReconcileStatus.DONE, error=error)

    @classmethod
    def ignored(cls) -> ReconcileResult:
        return cls(ReconcileStatus.IGNORED)

    @classmethod
    def retry_after(cls, delay: float, error: SyncError | None = None) -> ReconcileResult:
        return cls(ReconcileStatus.RETRY, requeue_after=delay, error=error)

    @property
    def requeue(self) -> bool:
        return self.status is ReconcileStatus.RETRY


def _result_for_error(ctx: SyncContext, error: SyncError) -> ReconcileResult:
    """Decide between retry and ignore for a synchronization failure."""
    if isinstance(error, NoAnnotationError):
        return ReconcileResult.done()

    if isinstance(error, AnnotationError):
        log.error("secret_misconfigured", error=error.message, code=error.code)
        return ReconcileResult.done(error)

    if isinstance(error, RegistryError):
        log.error("registry_conflict", error=error.message, code=error.code, details=error.details)
        return ReconcileResult.done(error)

    log.error(
        "synchronize_failed_retry",
        error=error.message,
        code=error.code,
        retry_after=ctx.requeue_after,
    )
    return ReconcileResult.retry_after(ctx.requeue_after, error)


def _run(
    ctx: SyncContext,
    kind: ReconcileKind,
    target: str,
    reconcile: Callable[[], ReconcileResult],
) -> ReconcileResult:
    """Run one pass with log context, error mapping and metrics."""
    started = time.monotonic()
    with LogContext(reconcile_kind=kind.value, target=target):
        log.debug("reconcile_started")
        try:
            result = reconcile()
        except SyncError as e:
            result = _result_for_error(ctx, e)
        except Exception as e:
            log.exception("reconcile_unexpected_error")
            result = _result_for_error(ctx, ensure_sync_error(e, details={"target": target}))
        log.debug("reconcile_finished", status=result.status.value)

    if ctx.metrics is not None:
        ctx.metrics.record_reconciliation(
            kind.value, result.status.value, time.monotonic() - started
        )
        ctx.metrics.set_registry_size(len(ctx.registry), ctx.registry.owned_secret_count())
    return result


# ============================================================================
# Owner secrets
# ============================================================================


def reconcile_secret(ctx: SyncContext, name: NamespacedName) -> ReconcileResult:
    """Reconcile the owner secret ``name``.

    A deleted owner is only removed from the registry; its replicas are left
    to the cluster garbage collector through their owner reference.
    """

    def reconcile() -> ReconcileResult:
        if ctx.is_ignored(name.namespace):
            log.debug("namespace_ignored", namespace=name.namespace)
            return ReconcileResult.ignored()

        secret = ctx.client.get_secret(name)
        registered = ctx.registry.secret_with_name(name)

        if secret is None:
            if registered is None:
                return ReconcileResult.ignored()
            _unregister(ctx, registered.uid)
            log.info("owner_deleted", owner=str(name), uid=registered.uid)
            return ReconcileResult.done()

        if secret.metadata.owner_references:
            log.debug("secret_already_owned", secret=str(name))
            return ReconcileResult.ignored()

        if registered is not None and registered.uid != secret.metadata.uid:
            # Deleted and recreated under the same name
            _unregister(ctx, registered.uid)
            log.info("owner_recreated", owner=str(name), previous_uid=registered.uid)

        synchronize_secret(ctx, secret)
        return ReconcileResult.done()

    return _run(ctx, ReconcileKind.SECRET, str(name), reconcile)


def _unregister(ctx: SyncContext, uid: str) -> None:
    try:
        ctx.registry.unregister_secret(uid)
    except SecretNotFoundError:
        log.debug("owner_already_unregistered", uid=uid)


# ============================================================================
# Owned secrets (replicas)
# ============================================================================


def _find_owner_for_adoption(ctx: SyncContext, name: NamespacedName) -> OwnerSecret | None:
    """Locate the owner of an unregistered replica.

    A live replica leads to its owner through its owner reference and origin
    labels. A deleted one can only be matched by name, which owners share
    with their replicas and which is unique among registered owners.
    """
    replica = ctx.client.get_secret(name)
    if replica is None:
        return ctx.registry.secret_with_bare_name(name.name)

    reference = owner_reference(replica)
    if reference is None:
        return None

    registered = ctx.registry.secret_with_uid(reference.uid)
    if registered is not None:
        return registered

    origin_namespace = (replica.metadata.labels or {}).get(ORIGIN_NAMESPACE_LABEL)
    if not origin_namespace:
        return None
    return OwnerSecret(NamespacedName(origin_namespace, reference.name), reference.uid)


def reconcile_owned_secret(ctx: SyncContext, name: NamespacedName) -> ReconcileResult:
    """Reconcile the replica ``name`` against its owner.

    Replicas unknown to the registry are re-adopted when their owner
    reference and origin labels lead to a live owner with the same uid.
    Deleted unknown replicas are matched to the registered owner of the
    same name.
    """

    def reconcile() -> ReconcileResult:
        if ctx.is_ignored(name.namespace):
            return ReconcileResult.ignored()

        expected = ctx.registry.secret_with_owned_secret_name(name)
        adopting = expected is None
        if adopting:
            expected = _find_owner_for_adoption(ctx, name)
            if expected is None:
                log.debug("replica_unowned_ignore", replica=str(name))
                return ReconcileResult.ignored()

        owner_name = expected.name
        if owner_name.namespace == name.namespace or ctx.is_ignored(owner_name.namespace):
            return ReconcileResult.ignored()

        owner = ctx.client.get_secret(owner_name)
        if owner is None:
            log.debug("replica_owner_missing", replica=str(name), owner=str(owner_name))
            return ReconcileResult.ignored()

        if owner.metadata.uid != expected.uid or owner.metadata.owner_references:
            log.debug("replica_owner_mismatch", replica=str(name), owner=str(owner_name))
            return ReconcileResult.ignored()

        if adopting:
            log.info("replica_adopt", replica=str(name), owner=str(owner_name))

        synchronize_owned_secret(ctx, owner, name.namespace)
        return ReconcileResult.done()

    return _run(ctx, ReconcileKind.OWNED_SECRET, str(name), reconcile)


# ============================================================================
# Namespaces
# ============================================================================


def reconcile_namespace(
    ctx: SyncContext,
    name: str,
    reconcile_owner: Callable[[NamespacedName], ReconcileResult] | None = None,
) -> ReconcileResult:
    """Re-run owner reconciliation for every registered owner.

    Args:
        ctx: Synchronization context
        name: Namespace that changed
        reconcile_owner: Owner reconciliation to run, ``reconcile_secret``
            by default. The operator passes a serialized variant.
    """
    if reconcile_owner is None:

        def reconcile_owner(owner: NamespacedName) -> ReconcileResult:
            return reconcile_secret(ctx, owner)

    def reconcile() -> ReconcileResult:
        if ctx.is_ignored(name):
            log.debug("namespace_ignored", namespace=name)
            return ReconcileResult.ignored()

        owners = ctx.registry.secrets()
        log.info("namespace_reconcile_owners", namespace=name, owners=len(owners))

        retry: ReconcileResult | None = None
        for owner in owners:
            result = reconcile_owner(owner)
            if result.requeue:
                log.warning("namespace_owner_reconcile_failed", namespace=name, owner=str(owner))
                retry = retry or result

        return retry or ReconcileResult.done()

    return _run(ctx, ReconcileKind.NAMESPACE, name, reconcile)


__all__ = [
    "ReconcileKind",
    "ReconcileResult",
    "ReconcileStatus",
    "reconcile_namespace",
    "reconcile_owned_secret",
    "reconcile_secret",
]
