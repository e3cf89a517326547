"""Pytest configuration and fixtures for Sync Secrets tests."""

from __future__ import annotations

import copy
import itertools
import os
from typing import TYPE_CHECKING, Any

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from sync_secrets.constants import ALL_NAMESPACES_ANNOTATION, OWNER_KIND
from sync_secrets.controller.context import SyncContext
from sync_secrets.kubernetes.client import ClusterClient
from sync_secrets.kubernetes.selectors import parse_selector
from sync_secrets.registry import NamespacedName, Registry


if TYPE_CHECKING:
    from collections.abc import Callable, Generator


# Ensure we're using test configuration
os.environ.setdefault("SYNC_SECRETS_ENVIRONMENT", "development")


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Reset settings cache before each test."""
    from sync_secrets.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeCoreV1Api:
    """In-memory stand-in for ``kubernetes.client.CoreV1Api``.

    Implements the secret and namespace calls used by ``ClusterClient``
    with the API server semantics that matter to the operator: 404 on
    missing objects, 409 on existing names, uid preconditions and
    resourceVersion checks. Failures can be injected per call and namespace.
    """

    def __init__(self) -> None:
        self.namespaces: dict[str, dict[str, str]] = {}
        self.secrets: dict[tuple[str, str], client.V1Secret] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.failures: dict[tuple[str, str], int] = {}
        self._uids = itertools.count(1)
        self._versions = itertools.count(1)

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def add_namespace(self, name: str, labels: dict[str, str] | None = None) -> None:
        self.namespaces[name] = dict(labels or {})

    def label_namespace(self, name: str, labels: dict[str, str]) -> None:
        self.namespaces[name] = dict(labels)

    def remove_namespace(self, name: str) -> None:
        """Delete a namespace together with every secret it holds."""
        self.namespaces.pop(name, None)
        for key in [key for key in self.secrets if key[0] == name]:
            del self.secrets[key]

    def add_secret(
        self,
        namespace: str,
        name: str,
        *,
        data: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
        annotations: dict[str, str] | None = None,
        owner_references: list[client.V1OwnerReference] | None = None,
        secret_type: str = "Opaque",
    ) -> client.V1Secret:
        """Store a secret directly, bypassing call recording."""
        secret = client.V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=namespace,
                labels=labels,
                annotations=annotations,
                owner_references=owner_references,
            ),
            data=data,
            type=secret_type,
        )
        return self._store(secret)

    def stored(self, namespace: str, name: str) -> client.V1Secret | None:
        return self.secrets.get((namespace, name))

    def writes(self) -> list[tuple[str, str, str]]:
        """Recorded create, replace and delete calls."""
        return [call for call in self.calls if call[0] in {"create", "replace", "delete"}]

    def collect_garbage(self, owner_uid: str) -> None:
        """Delete secrets owned by ``owner_uid``, as the cluster GC would."""
        for key, secret in list(self.secrets.items()):
            if any(ref.uid == owner_uid for ref in secret.metadata.owner_references or []):
                del self.secrets[key]

    def fail(self, operation: str, namespace: str, status: int = 500) -> None:
        self.failures[(operation, namespace)] = status

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _store(self, secret: client.V1Secret) -> client.V1Secret:
        stored = copy.deepcopy(secret)
        if not stored.metadata.uid:
            stored.metadata.uid = f"uid-{next(self._uids)}"
        stored.metadata.resource_version = str(next(self._versions))
        self.secrets[(stored.metadata.namespace, stored.metadata.name)] = stored
        return copy.deepcopy(stored)

    def _record(self, operation: str, namespace: str, name: str = "") -> None:
        self.calls.append((operation, namespace, name))
        status = self.failures.get((operation, namespace))
        if status is not None:
            raise ApiException(status=status, reason="Injected failure")

    # ------------------------------------------------------------------
    # CoreV1Api surface
    # ------------------------------------------------------------------

    def read_namespaced_secret(self, name: str, namespace: str, **_kwargs: Any) -> client.V1Secret:
        self._record("read", namespace, name)
        secret = self.secrets.get((namespace, name))
        if secret is None:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(secret)

    def list_namespace(
        self, label_selector: str | None = None, **_kwargs: Any
    ) -> client.V1NamespaceList:
        self._record("list", "")
        selector = parse_selector(label_selector or "")
        items = [
            client.V1Namespace(metadata=client.V1ObjectMeta(name=name, labels=labels or None))
            for name, labels in sorted(self.namespaces.items())
            if selector.matches(labels)
        ]
        return client.V1NamespaceList(items=items)

    def create_namespaced_secret(
        self, namespace: str, body: client.V1Secret, **_kwargs: Any
    ) -> client.V1Secret:
        self._record("create", namespace, body.metadata.name)
        if namespace not in self.namespaces:
            raise ApiException(status=404, reason="Not Found")
        if (namespace, body.metadata.name) in self.secrets:
            raise ApiException(status=409, reason="AlreadyExists")
        body = copy.deepcopy(body)
        body.metadata.namespace = namespace
        body.metadata.uid = None
        return self._store(body)

    def replace_namespaced_secret(
        self, name: str, namespace: str, body: client.V1Secret, **_kwargs: Any
    ) -> client.V1Secret:
        self._record("replace", namespace, name)
        existing = self.secrets.get((namespace, name))
        if existing is None:
            raise ApiException(status=404, reason="Not Found")
        version = body.metadata.resource_version
        if version and version != existing.metadata.resource_version:
            raise ApiException(status=409, reason="Conflict")
        body = copy.deepcopy(body)
        body.metadata.uid = existing.metadata.uid
        return self._store(body)

    def delete_namespaced_secret(
        self,
        name: str,
        namespace: str,
        body: client.V1DeleteOptions | None = None,
        **_kwargs: Any,
    ) -> client.V1Status:
        self._record("delete", namespace, name)
        existing = self.secrets.get((namespace, name))
        if existing is None:
            raise ApiException(status=404, reason="Not Found")
        preconditions = body.preconditions if body is not None else None
        if preconditions is not None and preconditions.uid not in (None, existing.metadata.uid):
            raise ApiException(status=409, reason="Conflict")
        del self.secrets[(namespace, name)]
        return client.V1Status(status="Success")


def _owner_ref(owner: client.V1Secret) -> client.V1OwnerReference:
    return client.V1OwnerReference(
        api_version="v1",
        kind=OWNER_KIND,
        name=owner.metadata.name,
        uid=owner.metadata.uid,
    )


@pytest.fixture
def owner_ref() -> Callable[[client.V1Secret], client.V1OwnerReference]:
    """Build an owner reference pointing at a secret."""
    return _owner_ref


@pytest.fixture
def fake_api() -> FakeCoreV1Api:
    """Fake cluster with namespaces ``default``, ``kube-system`` and ``ns-a``."""
    api = FakeCoreV1Api()
    api.add_namespace("default")
    api.add_namespace("kube-system")
    api.add_namespace("ns-a", {"env": "prod"})
    return api


@pytest.fixture
def cluster_client(fake_api: FakeCoreV1Api) -> ClusterClient:
    """ClusterClient backed by the fake API."""
    return ClusterClient(core_api=fake_api, request_timeout=5)


@pytest.fixture
def registry() -> Registry:
    """Fresh, isolated registry."""
    return Registry()


@pytest.fixture
def ctx(cluster_client: ClusterClient, registry: Registry) -> SyncContext:
    """Synchronization context over the fake cluster."""
    return SyncContext(client=cluster_client, registry=registry, requeue_after=5.0)


@pytest.fixture
def shared_owner(fake_api: FakeCoreV1Api) -> client.V1Secret:
    """Owner ``default/shared`` replicated to all namespaces."""
    return fake_api.add_secret(
        "default",
        "shared",
        data={"password": "czNjcjN0"},
        labels={"app": "shared"},
        annotations={ALL_NAMESPACES_ANNOTATION: "true", "team": "platform"},
    )


@pytest.fixture
def shared_name() -> NamespacedName:
    return NamespacedName("default", "shared")
