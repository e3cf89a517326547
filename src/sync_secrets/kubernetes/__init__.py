"""Sync Secrets Kubernetes package.

Kubernetes API access and label selector handling.
"""

from sync_secrets.kubernetes.client import ClusterClient, get_cluster_client
from sync_secrets.kubernetes.selectors import LabelSelector, parse_selector


__all__ = [
    "ClusterClient",
    "LabelSelector",
    "get_cluster_client",
    "parse_selector",
]
