"""In-memory registry of managed secrets and the replicas they own.

- A managed (owner) secret is a secret carrying a replication policy.
- An owned secret is a replica created by the operator from an owner secret.

The registry is a cache of what reconciliations observed in the cluster. It
starts empty on every process start and is rebuilt as owners are reconciled.
All four indexes are guarded by a single lock so readers never observe an
owner without its owned set (or an owned record pointing at a removed owner).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import NamedTuple

from sync_secrets.errors import NameConflictError, RegistryError, SecretNotFoundError


class NamespacedName(NamedTuple):
    """Namespace and name of a namespaced Kubernetes object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class OwnerSecret:
    """Identity of a registered owner secret."""

    name: NamespacedName
    uid: str


class Registry:
    """Bidirectional index between owner secrets and their owned replicas.

    Example:
        >>> registry = Registry()
        >>> registry.register_secret(NamespacedName("default", "shared"), "u1")
        >>> registry.register_owned_secret("u1", NamespacedName("ns-a", "shared"))
        >>> registry.owned_secrets_with_uid("u1")
        [NamespacedName(namespace='ns-a', name='shared')]
    """

    def __init__(self) -> None:
        self._secrets_by_uid: dict[str, OwnerSecret] = {}
        # Owner names are unique cluster-wide, so the bare name is enough.
        self._secrets_by_name: dict[str, OwnerSecret] = {}
        self._secrets_by_owned_name: dict[NamespacedName, OwnerSecret] = {}
        self._owned_by_uid: dict[str, set[NamespacedName]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._secrets_by_uid)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def secrets(self) -> list[NamespacedName]:
        """Return the names of all registered owner secrets."""
        with self._lock:
            return [secret.name for secret in self._secrets_by_uid.values()]

    def secret_with_uid(self, uid: str) -> OwnerSecret | None:
        """Return the owner registered with ``uid``, or None."""
        with self._lock:
            return self._secrets_by_uid.get(uid)

    def secret_with_name(self, name: NamespacedName) -> OwnerSecret | None:
        """Return the owner registered at ``name``, or None."""
        with self._lock:
            secret = self._secrets_by_name.get(name.name)
        if secret is None or secret.name != name:
            return None
        return secret

    def secret_with_bare_name(self, name: str) -> OwnerSecret | None:
        """Return the owner registered under ``name`` in any namespace, or None."""
        with self._lock:
            return self._secrets_by_name.get(name)

    def secret_with_owned_secret_name(self, owned_name: NamespacedName) -> OwnerSecret | None:
        """Return the owner of the replica ``owned_name``, or None."""
        with self._lock:
            return self._secrets_by_owned_name.get(owned_name)

    def owned_secrets_with_uid(self, uid: str) -> list[NamespacedName]:
        """Return the replicas owned by ``uid`` (empty if unregistered)."""
        with self._lock:
            owned = self._owned_by_uid.get(uid, set())
            return sorted(owned)

    def owned_secret_count(self) -> int:
        """Return the number of owned replicas across all owners."""
        with self._lock:
            return len(self._secrets_by_owned_name)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register_secret(self, name: NamespacedName, uid: str) -> None:
        """Register an owner secret.

        Registering an already known uid is a no-op.

        Raises:
            NameConflictError: A different uid is registered under the same name.
        """
        with self._lock:
            if uid in self._secrets_by_uid:
                return

            existing = self._secrets_by_name.get(name.name)
            if existing is not None:
                raise NameConflictError(name.name)

            secret = OwnerSecret(name=name, uid=uid)
            self._secrets_by_uid[uid] = secret
            self._secrets_by_name[name.name] = secret
            self._owned_by_uid[uid] = set()

    def unregister_secret(self, uid: str) -> None:
        """Remove an owner secret and every owned record pointing to it.

        Raises:
            SecretNotFoundError: ``uid`` is not registered.
        """
        with self._lock:
            secret = self._secrets_by_uid.pop(uid, None)
            if secret is None:
                raise SecretNotFoundError("UID", uid)

            del self._secrets_by_name[secret.name.name]
            for owned_name in self._owned_by_uid.pop(uid, set()):
                self._secrets_by_owned_name.pop(owned_name, None)

    def register_owned_secret(self, owner_uid: str, owned_name: NamespacedName) -> None:
        """Record ``owned_name`` as a replica of the owner ``owner_uid``.

        Registering an already mapped replica is a no-op.

        Raises:
            SecretNotFoundError: ``owner_uid`` is not registered.
            RegistryError: The replica would live in the owner's own namespace.
        """
        with self._lock:
            if owned_name in self._secrets_by_owned_name:
                return

            secret = self._secrets_by_uid.get(owner_uid)
            if secret is None:
                raise SecretNotFoundError("UID", owner_uid)
            if owned_name.namespace == secret.name.namespace:
                raise RegistryError(
                    f"secret {owned_name} cannot be owned by {secret.name}: same namespace",
                    details={"owner": str(secret.name), "owned": str(owned_name)},
                )

            self._secrets_by_owned_name[owned_name] = secret
            self._owned_by_uid[owner_uid].add(owned_name)

    def unregister_owned_secret(self, owned_name: NamespacedName) -> None:
        """Forget the replica ``owned_name``.

        Raises:
            SecretNotFoundError: ``owned_name`` is not mapped to any owner.
        """
        with self._lock:
            secret = self._secrets_by_owned_name.pop(owned_name, None)
            if secret is None:
                raise SecretNotFoundError("owned secret name", str(owned_name))

            self._owned_by_uid[secret.uid].discard(owned_name)


__all__ = ["NamespacedName", "OwnerSecret", "Registry"]
