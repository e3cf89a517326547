"""Sync Secrets registry package.

In-memory index correlating owner secrets with their replicas.
"""

from sync_secrets.registry.registry import NamespacedName, OwnerSecret, Registry


__all__ = ["NamespacedName", "OwnerSecret", "Registry"]
