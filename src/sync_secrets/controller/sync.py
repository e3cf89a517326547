"""Secret synchronization engine.

Diffs the namespaces an owner secret targets against the replicas the
registry records for it, deletes replicas that are no longer targeted and
creates or updates the others. A resource is only ever updated or deleted
when its owner reference points at the owner being synchronized.
"""

from __future__ import annotations

from kubernetes import client

from sync_secrets.controller.annotations import resolve_target_namespaces
from sync_secrets.controller.context import SyncContext
from sync_secrets.controller.metadata import (
    build_replica_template,
    is_owned_by,
    replica_differs,
    replica_for_namespace,
)
from sync_secrets.errors import (
    AnnotationError,
    ClientError,
    NoAnnotationError,
    SecretNotFoundError,
    SyncError,
)
from sync_secrets.observability.logging import get_logger
from sync_secrets.registry import NamespacedName


log = get_logger(__name__)


# Replica operations reported to metrics
OPERATION_CREATE = "create"
OPERATION_UPDATE = "update"
OPERATION_DELETE = "delete"
OPERATION_SKIP = "skip"
OPERATION_UNCHANGED = "unchanged"


def _secret_name(secret: client.V1Secret) -> NamespacedName:
    return NamespacedName(secret.metadata.namespace, secret.metadata.name)


def _resolve(
    ctx: SyncContext, owner: client.V1Secret
) -> tuple[list[str], AnnotationError | NoAnnotationError | None]:
    """Resolve the owner's targets; annotation problems are returned, not raised."""
    try:
        namespaces = resolve_target_namespaces(
            ctx.client,
            owner.metadata.annotations,
            owner.metadata.namespace,
            ctx.ignored_namespaces,
        )
    except (AnnotationError, NoAnnotationError) as e:
        return [], e
    return namespaces, None


def _forget_owner_without_replicas(ctx: SyncContext, uid: str) -> None:
    """Drop the owner record once it no longer owns any replica."""
    if ctx.registry.secret_with_uid(uid) is None or ctx.registry.owned_secrets_with_uid(uid):
        return
    try:
        ctx.registry.unregister_secret(uid)
    except SecretNotFoundError:
        return
    log.info("owner_unregistered", uid=uid)


def delete_replica(ctx: SyncContext, owner_uid: str, name: NamespacedName) -> str:
    """Unregister and delete the replica ``name`` of ``owner_uid``.

    The registry record is removed before the cluster is touched. If the
    cluster call fails, the record is put back so the retried pass still
    sees the orphan. The live resource is only deleted if it is still owned
    by ``owner_uid``.

    Raises:
        ClientError: The replica could not be fetched or deleted.
    """
    try:
        ctx.registry.unregister_owned_secret(name)
    except SecretNotFoundError:
        log.debug("replica_not_registered", replica=str(name))

    try:
        existing = ctx.client.get_secret(name)
        if existing is None:
            return OPERATION_UNCHANGED

        if not is_owned_by(existing, owner_uid):
            log.warning("replica_not_owned_skip_delete", replica=str(name), owner_uid=owner_uid)
            ctx.record_replica_operation(OPERATION_SKIP)
            return OPERATION_SKIP

        log.info("replica_delete", replica=str(name), owner_uid=owner_uid)
        deleted = ctx.client.delete_secret(name, uid=existing.metadata.uid)
    except ClientError:
        _restore_owned_record(ctx, owner_uid, name)
        raise

    if not deleted:
        return OPERATION_UNCHANGED
    ctx.record_replica_operation(OPERATION_DELETE)
    return OPERATION_DELETE


def _restore_owned_record(ctx: SyncContext, owner_uid: str, name: NamespacedName) -> None:
    try:
        ctx.registry.register_owned_secret(owner_uid, name)
    except SecretNotFoundError:
        # Owner already forgotten; its next pass starts from the cluster again
        return
    log.debug("replica_record_restored", replica=str(name), owner_uid=owner_uid)


def apply_replica(
    ctx: SyncContext,
    owner_uid: str,
    template: client.V1Secret,
    namespace: str,
) -> str:
    """Create or update the replica of ``template`` in ``namespace``.

    Returns:
        str: The operation performed (create, update, skip or unchanged)

    Raises:
        ClientError: A Kubernetes API call failed.
        RegistryError: The owner was unregistered concurrently.
    """
    name = NamespacedName(namespace, template.metadata.name)
    existing = ctx.client.get_secret(name)

    if existing is None:
        log.info("replica_create", replica=str(name), owner_uid=owner_uid)
        ctx.client.create_secret(replica_for_namespace(template, namespace))
        ctx.registry.register_owned_secret(owner_uid, name)
        ctx.record_replica_operation(OPERATION_CREATE)
        return OPERATION_CREATE

    if not is_owned_by(existing, owner_uid):
        log.info("replica_not_owned_skip", replica=str(name), owner_uid=owner_uid)
        ctx.record_replica_operation(OPERATION_SKIP)
        return OPERATION_SKIP

    operation = OPERATION_UNCHANGED
    if replica_differs(existing, template):
        replica = replica_for_namespace(template, namespace)
        replica.metadata.resource_version = existing.metadata.resource_version
        log.info("replica_update", replica=str(name), owner_uid=owner_uid)
        ctx.client.update_secret(replica)
        ctx.record_replica_operation(OPERATION_UPDATE)
        operation = OPERATION_UPDATE

    ctx.registry.register_owned_secret(owner_uid, name)
    return operation


def synchronize(
    ctx: SyncContext,
    owner: client.V1Secret,
    namespaces: list[str],
    resolve_error: SyncError | None = None,
) -> None:
    """Bring the replicas of ``owner`` in line with ``namespaces``.

    Args:
        ctx: Synchronization context
        owner: Owner secret as currently stored in the cluster
        namespaces: Resolved target namespaces
        resolve_error: Error raised while resolving the targets, if any

    Raises:
        AnnotationError: ``resolve_error``, once orphaned replicas are gone.
        NoAnnotationError: ``resolve_error`` for a secret that owned replicas.
        RegistryError: The owner name collides with another owner.
        ClientError: A Kubernetes API call failed.
    """
    owner_name = _secret_name(owner)
    uid = owner.metadata.uid

    owned = ctx.registry.owned_secrets_with_uid(uid)
    if isinstance(resolve_error, NoAnnotationError) and not owned:
        _forget_owner_without_replicas(ctx, uid)
        return

    targets = set(namespaces) if resolve_error is None else set()
    for orphan in owned:
        if orphan.namespace not in targets:
            delete_replica(ctx, uid, orphan)

    if resolve_error is not None:
        _forget_owner_without_replicas(ctx, uid)
        raise resolve_error

    ctx.registry.register_secret(owner_name, uid)

    template = build_replica_template(owner, ctx.protected_labels, ctx.protected_annotations)
    log.info(
        "secret_synchronize",
        owner=str(owner_name),
        namespaces=len(targets),
        ignored=sorted(ctx.ignored_namespaces),
    )

    failures: list[ClientError] = []
    for namespace in sorted(targets):
        try:
            apply_replica(ctx, uid, template, namespace)
        except ClientError as e:
            log.warning(
                "replica_synchronize_failed",
                owner=str(owner_name),
                namespace=namespace,
                error=e.message,
            )
            failures.append(e)

    if len(failures) == 1:
        raise failures[0]
    if failures:
        raise ClientError(
            f"failed to synchronize {owner_name} in {len(failures)} namespaces",
            details={"errors": [failure.to_dict() for failure in failures]},
        )


def synchronize_secret(ctx: SyncContext, owner: client.V1Secret) -> None:
    """Resolve the targets of ``owner`` and synchronize all of its replicas."""
    namespaces, resolve_error = _resolve(ctx, owner)
    synchronize(ctx, owner, namespaces, resolve_error)


def synchronize_owned_secret(ctx: SyncContext, owner: client.V1Secret, namespace: str) -> None:
    """Synchronize the single replica of ``owner`` living in ``namespace``.

    The replica is restored when the namespace is still targeted and deleted
    otherwise.

    Raises:
        AnnotationError: The owner's annotations are invalid.
        NoAnnotationError: The owner is no longer managed.
        RegistryError: The owner name collides with another owner.
        ClientError: A Kubernetes API call failed.
    """
    uid = owner.metadata.uid
    namespaces, resolve_error = _resolve(ctx, owner)

    if resolve_error is None and namespace in namespaces:
        ctx.registry.register_secret(_secret_name(owner), uid)
        template = build_replica_template(owner, ctx.protected_labels, ctx.protected_annotations)
        apply_replica(ctx, uid, template, namespace)
        return

    delete_replica(ctx, uid, NamespacedName(namespace, owner.metadata.name))
    if resolve_error is not None:
        _forget_owner_without_replicas(ctx, uid)
        raise resolve_error


__all__ = [
    "apply_replica",
    "delete_replica",
    "synchronize",
    "synchronize_owned_secret",
    "synchronize_secret",
]
