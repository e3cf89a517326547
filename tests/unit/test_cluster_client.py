"""Unit tests for the Kubernetes API wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from sync_secrets.errors import ClientError
from sync_secrets.kubernetes.client import ClusterClient
from sync_secrets.kubernetes.selectors import parse_selector
from sync_secrets.registry import NamespacedName


def replica(namespace: str, name: str = "shared") -> client.V1Secret:
    return client.V1Secret(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        data={"password": "czNjcjN0"},
        type="Opaque",
    )


class TestReads:
    """Tests for get and list calls."""

    def test_get_secret(self, fake_api, cluster_client: ClusterClient, shared_owner) -> None:
        """Test an existing secret is returned."""
        secret = cluster_client.get_secret(NamespacedName("default", "shared"))

        assert secret.metadata.uid == shared_owner.metadata.uid

    def test_get_missing_secret(self, cluster_client: ClusterClient) -> None:
        """Test a missing secret is reported as None."""
        assert cluster_client.get_secret(NamespacedName("default", "missing")) is None

    def test_get_secret_failure(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test other API failures raise a ClientError with the status."""
        fake_api.fail("read", "default", status=403)

        with pytest.raises(ClientError) as exc_info:
            cluster_client.get_secret(NamespacedName("default", "shared"))

        assert exc_info.value.status == 403
        assert "default/shared" in str(exc_info.value)

    def test_list_namespaces(self, cluster_client: ClusterClient) -> None:
        """Test all namespaces are listed without a selector."""
        assert cluster_client.list_namespaces() == ["default", "kube-system", "ns-a"]

    def test_list_namespaces_with_selector(self, cluster_client: ClusterClient) -> None:
        """Test the selector is sent to the API server."""
        assert cluster_client.list_namespaces(parse_selector("env=prod")) == ["ns-a"]

    def test_empty_selector_not_sent(self) -> None:
        """Test an empty selector lists everything."""
        core_api = MagicMock()
        core_api.list_namespace.return_value = client.V1NamespaceList(items=[])

        ClusterClient(core_api=core_api, request_timeout=5).list_namespaces(parse_selector(""))

        core_api.list_namespace.assert_called_once_with(_request_timeout=5)


class TestWrites:
    """Tests for create, update and delete calls."""

    def test_create_secret(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test created secrets get a server-assigned uid."""
        created = cluster_client.create_secret(replica("ns-a"))

        assert created.metadata.uid
        assert fake_api.stored("ns-a", "shared") is not None

    def test_create_in_missing_namespace(self, cluster_client: ClusterClient) -> None:
        """Test creating in a deleted namespace is a ClientError."""
        with pytest.raises(ClientError) as exc_info:
            cluster_client.create_secret(replica("gone"))

        assert exc_info.value.status == 404

    def test_create_conflict(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test name clashes surface as 409."""
        fake_api.add_secret("ns-a", "shared")

        with pytest.raises(ClientError) as exc_info:
            cluster_client.create_secret(replica("ns-a"))

        assert exc_info.value.status == 409

    def test_update_with_stale_version(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test optimistic concurrency failures surface as 409."""
        stored = fake_api.add_secret("ns-a", "shared")
        fake_api.add_secret("ns-a", "shared", data={"password": "bmV3"})

        with pytest.raises(ClientError) as exc_info:
            cluster_client.update_secret(stored)

        assert exc_info.value.status == 409

    def test_update_secret(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test an up-to-date replacement succeeds."""
        stored = fake_api.add_secret("ns-a", "shared")
        stored.data = {"password": "bmV3"}

        cluster_client.update_secret(stored)

        assert fake_api.stored("ns-a", "shared").data == {"password": "bmV3"}

    def test_delete_secret(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test deleting an existing secret."""
        stored = fake_api.add_secret("ns-a", "shared")

        deleted = cluster_client.delete_secret(
            NamespacedName("ns-a", "shared"), stored.metadata.uid
        )

        assert deleted
        assert fake_api.stored("ns-a", "shared") is None

    def test_delete_missing_secret(self, cluster_client: ClusterClient) -> None:
        """Test deleting an absent secret is not an error."""
        assert not cluster_client.delete_secret(NamespacedName("ns-a", "shared"))

    def test_delete_uid_precondition(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test a recreated secret is not deleted under a stale uid."""
        fake_api.add_secret("ns-a", "shared")

        with pytest.raises(ClientError) as exc_info:
            cluster_client.delete_secret(NamespacedName("ns-a", "shared"), "stale-uid")

        assert exc_info.value.status == 409
        assert fake_api.stored("ns-a", "shared") is not None

    def test_delete_sends_preconditions(self) -> None:
        """Test the uid is sent as a deletion precondition."""
        core_api = MagicMock()
        core_api.delete_namespaced_secret.side_effect = ApiException(status=500)

        with pytest.raises(ClientError):
            ClusterClient(core_api=core_api, request_timeout=5).delete_secret(
                NamespacedName("ns-a", "shared"), "u1"
            )

        body = core_api.delete_namespaced_secret.call_args.kwargs["body"]
        assert body.preconditions.uid == "u1"
