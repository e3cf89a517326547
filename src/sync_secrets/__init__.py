"""Sync Secrets - Kubernetes secret replication operator.

A Kubernetes operator that replicates annotated secrets into every namespace
selected by their replication policy and keeps the replicas synchronized
as secrets and namespace labels change.
"""

from sync_secrets.version import __version__


__all__ = ["__version__"]
