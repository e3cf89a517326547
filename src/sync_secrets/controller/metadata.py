"""Replica templates and ownership checks."""

from __future__ import annotations

import copy
from collections.abc import Iterable

from kubernetes import client

from sync_secrets.constants import (
    ORIGIN_NAME_LABEL,
    ORIGIN_NAMESPACE_LABEL,
    OWNER_API_VERSION,
    OWNER_KIND,
    POLICY_ANNOTATIONS,
)


def owner_reference(secret: client.V1Secret) -> client.V1OwnerReference | None:
    """Return the first ``Secret`` owner reference of ``secret``, if any."""
    for reference in secret.metadata.owner_references or []:
        if reference.kind == OWNER_KIND:
            return reference
    return None


def is_owned_by(secret: client.V1Secret, uid: str) -> bool:
    """Return True if ``secret`` carries an owner reference to ``uid``."""
    return any(
        reference.uid == uid and reference.kind == OWNER_KIND
        for reference in secret.metadata.owner_references or []
    )


def assign_origin_metadata(secret: client.V1Secret, origin: client.V1Secret) -> client.V1Secret:
    """Label ``secret`` with the name and namespace of the secret it came from."""
    if secret.metadata.labels is None:
        secret.metadata.labels = {}
    secret.metadata.labels[ORIGIN_NAME_LABEL] = origin.metadata.name
    secret.metadata.labels[ORIGIN_NAMESPACE_LABEL] = origin.metadata.namespace
    return secret


def exclude_protected_metadata(
    secret: client.V1Secret,
    protected_labels: Iterable[str] = (),
    protected_annotations: Iterable[str] = (),
) -> client.V1Secret:
    """Strip policy annotations plus every protected label and annotation."""
    annotations = secret.metadata.annotations or {}
    for annotation in (*POLICY_ANNOTATIONS, *protected_annotations):
        annotations.pop(annotation, None)

    labels = secret.metadata.labels or {}
    for label in protected_labels:
        labels.pop(label, None)

    secret.metadata.annotations = annotations or None
    secret.metadata.labels = labels or None
    return secret


def build_replica_template(
    owner: client.V1Secret,
    protected_labels: Iterable[str] = (),
    protected_annotations: Iterable[str] = (),
) -> client.V1Secret:
    """Build the replica of ``owner``, without a namespace.

    The replica keeps the owner's name, data, type, labels and annotations,
    minus the policy annotations and protected metadata, and points back to
    the owner through an owner reference.
    """
    template = client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(
            name=owner.metadata.name,
            labels=dict(owner.metadata.labels or {}),
            annotations=dict(owner.metadata.annotations or {}),
            owner_references=[
                client.V1OwnerReference(
                    api_version=OWNER_API_VERSION,
                    kind=OWNER_KIND,
                    name=owner.metadata.name,
                    uid=owner.metadata.uid,
                )
            ],
        ),
        data=copy.deepcopy(owner.data),
        type=owner.type,
        immutable=owner.immutable,
    )
    template = exclude_protected_metadata(template, protected_labels, protected_annotations)
    return assign_origin_metadata(template, owner)


def replica_for_namespace(template: client.V1Secret, namespace: str) -> client.V1Secret:
    """Copy ``template`` into ``namespace``."""
    replica = copy.deepcopy(template)
    replica.metadata.namespace = namespace
    return replica


def _owner_keys(secret: client.V1Secret) -> list[tuple[str, str, str, str]]:
    return sorted(
        (reference.api_version, reference.kind, reference.name, reference.uid)
        for reference in secret.metadata.owner_references or []
    )


def replica_differs(existing: client.V1Secret, template: client.V1Secret) -> bool:
    """Return True if ``existing`` must be updated to match ``template``."""
    return (
        (existing.data or {}) != (template.data or {})
        or existing.type != template.type
        or bool(existing.immutable) != bool(template.immutable)
        or (existing.metadata.labels or {}) != (template.metadata.labels or {})
        or (existing.metadata.annotations or {}) != (template.metadata.annotations or {})
        or _owner_keys(existing) != _owner_keys(template)
    )


__all__ = [
    "assign_origin_metadata",
    "build_replica_template",
    "exclude_protected_metadata",
    "is_owned_by",
    "owner_reference",
    "replica_differs",
    "replica_for_namespace",
]
