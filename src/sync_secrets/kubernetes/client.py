"""Kubernetes API access for secrets and namespaces.

Thin wrapper around ``CoreV1Api`` exposing the get/list/create/update/delete
calls the synchronization engine needs. Every API failure is raised as a
``ClientError``; a missing object is reported as ``None`` (get) or ``False``
(delete) instead.
"""

from __future__ import annotations

from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client import ApiException

from sync_secrets.config.settings import get_settings
from sync_secrets.errors import ClientError
from sync_secrets.kubernetes.selectors import LabelSelector
from sync_secrets.observability.logging import get_logger
from sync_secrets.registry import NamespacedName


log = get_logger(__name__)

# HTTP Status Codes
HTTP_NOT_FOUND = 404


def load_kubernetes_config() -> None:
    """Load in-cluster configuration, falling back to a kubeconfig file."""
    settings = get_settings().kubernetes
    if settings.in_cluster:
        k8s_config.load_incluster_config()
        return

    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        k8s_config.load_kube_config(
            config_file=settings.kubeconfig,
            context=settings.context,
        )


def is_not_found(error: ApiException) -> bool:
    """Return True if ``error`` is an HTTP 404."""
    return error.status == HTTP_NOT_FOUND


class ClusterClient:
    """Kubernetes API client for secrets and namespaces.

    Attributes:
        core_api: Kubernetes CoreV1Api client
        request_timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        core_api: client.CoreV1Api | None = None,
        request_timeout: int | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            core_api: Pre-built API client. When omitted, the Kubernetes
                configuration is loaded and a new ``CoreV1Api`` is created.
            request_timeout: Per-request timeout, defaults to the configured
                Kubernetes API timeout.
        """
        if core_api is None:
            load_kubernetes_config()
            core_api = client.CoreV1Api()

        self.core_api = core_api
        self.request_timeout = request_timeout or get_settings().kubernetes.api_timeout

    def get_secret(self, name: NamespacedName) -> client.V1Secret | None:
        """Fetch a secret, returning None if it does not exist."""
        try:
            return self.core_api.read_namespaced_secret(
                name=name.name,
                namespace=name.namespace,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise ClientError.from_api_exception(f"fetch Secret {name}", e) from e

    def list_namespaces(self, selector: LabelSelector | None = None) -> list[str]:
        """List namespace names, optionally filtered by a label selector."""
        kwargs: dict[str, str] = {}
        if selector is not None and not selector.empty:
            kwargs["label_selector"] = str(selector)

        try:
            namespaces = self.core_api.list_namespace(
                _request_timeout=self.request_timeout,
                **kwargs,
            )
        except ApiException as e:
            raise ClientError.from_api_exception("list namespaces", e) from e

        return [namespace.metadata.name for namespace in namespaces.items or []]

    def create_secret(self, secret: client.V1Secret) -> client.V1Secret:
        """Create a secret in ``secret.metadata.namespace``."""
        name = NamespacedName(secret.metadata.namespace, secret.metadata.name)
        try:
            return self.core_api.create_namespaced_secret(
                namespace=name.namespace,
                body=secret,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise ClientError.from_api_exception(f"create Secret {name}", e) from e

    def update_secret(self, secret: client.V1Secret) -> client.V1Secret:
        """Replace an existing secret with ``secret``."""
        name = NamespacedName(secret.metadata.namespace, secret.metadata.name)
        try:
            return self.core_api.replace_namespaced_secret(
                name=name.name,
                namespace=name.namespace,
                body=secret,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise ClientError.from_api_exception(f"update Secret {name}", e) from e

    def delete_secret(self, name: NamespacedName, uid: str | None = None) -> bool:
        """Delete a secret.

        Args:
            name: Secret to delete
            uid: When set, the deletion only succeeds if the live object
                still has this uid.

        Returns:
            bool: False if the secret was already gone
        """
        body = None
        if uid is not None:
            body = client.V1DeleteOptions(preconditions=client.V1Preconditions(uid=uid))

        try:
            self.core_api.delete_namespaced_secret(
                name=name.name,
                namespace=name.namespace,
                body=body,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if is_not_found(e):
                log.debug("secret_already_deleted", secret=str(name))
                return False
            raise ClientError.from_api_exception(f"delete Secret {name}", e) from e
        return True


class _ClusterClientHolder:
    instance: ClusterClient | None = None


def get_cluster_client() -> ClusterClient:
    """Get the singleton ClusterClient instance."""
    if _ClusterClientHolder.instance is None:
        _ClusterClientHolder.instance = ClusterClient()
    return _ClusterClientHolder.instance


__all__ = [
    "ClusterClient",
    "get_cluster_client",
    "is_not_found",
    "load_kubernetes_config",
]
