"""Replication policy annotations.

A secret is replicated when it carries exactly one of:

- ``secret.sync.klst.pw/all-namespaces: "true"``
- ``secret.sync.klst.pw/namespace-selector: <label selector>``
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from sync_secrets.constants import ALL_NAMESPACES_ANNOTATION, NAMESPACE_SELECTOR_ANNOTATION
from sync_secrets.errors import AnnotationError, NoAnnotationError
from sync_secrets.kubernetes.client import ClusterClient
from sync_secrets.kubernetes.selectors import LabelSelector, parse_selector


@dataclass(frozen=True)
class NamespaceQuery:
    """Which namespaces a secret targets. ``selector=None`` means all of them."""

    selector: LabelSelector | None = None

    @property
    def all_namespaces(self) -> bool:
        return self.selector is None


def parse_namespace_query(annotations: Mapping[str, str] | None) -> NamespaceQuery:
    """Build the target namespace query from a secret's annotations.

    Raises:
        AnnotationError: Both annotations are set, ``all-namespaces`` is not
            ``"true"``, or the selector cannot be parsed.
        NoAnnotationError: Neither annotation is set.
    """
    annotations = annotations or {}
    has_all_namespaces = ALL_NAMESPACES_ANNOTATION in annotations
    has_selector = NAMESPACE_SELECTOR_ANNOTATION in annotations

    if has_all_namespaces and has_selector:
        raise AnnotationError(
            f"annotation '{ALL_NAMESPACES_ANNOTATION}' and "
            f"'{NAMESPACE_SELECTOR_ANNOTATION}' cannot be used together"
        )

    if has_all_namespaces:
        value = annotations[ALL_NAMESPACES_ANNOTATION]
        if value.lower() != "true":
            raise AnnotationError(
                f"'{ALL_NAMESPACES_ANNOTATION}' is not 'true'",
                details={"value": value},
            )
        return NamespaceQuery()

    if has_selector:
        expression = annotations[NAMESPACE_SELECTOR_ANNOTATION]
        try:
            selector = parse_selector(expression)
        except ValueError as e:
            raise AnnotationError(
                f"failed to parse '{NAMESPACE_SELECTOR_ANNOTATION}': {e}",
                details={"value": expression},
            ) from e
        return NamespaceQuery(selector=selector)

    raise NoAnnotationError("no annotation found, ignore synchronization")


def resolve_target_namespaces(
    client: ClusterClient,
    annotations: Mapping[str, str] | None,
    namespace: str,
    ignored_namespaces: Iterable[str] = (),
) -> list[str]:
    """List the namespaces a secret must be replicated into.

    Args:
        client: Cluster client used to list namespaces
        annotations: Annotations of the owner secret
        namespace: Namespace of the owner secret (never a target)
        ignored_namespaces: Namespaces never used as targets

    Returns:
        list[str]: Target namespace names

    Raises:
        AnnotationError: The policy annotations are invalid.
        NoAnnotationError: The secret has no policy annotation.
        ClientError: Namespaces could not be listed.
    """
    query = parse_namespace_query(annotations)
    excluded = {namespace, *ignored_namespaces}
    return [name for name in client.list_namespaces(query.selector) if name not in excluded]


__all__ = [
    "NamespaceQuery",
    "parse_namespace_query",
    "resolve_target_namespaces",
]
