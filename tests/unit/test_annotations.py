"""Unit tests for the replication policy annotations."""

from __future__ import annotations

import pytest

from sync_secrets.constants import ALL_NAMESPACES_ANNOTATION, NAMESPACE_SELECTOR_ANNOTATION
from sync_secrets.controller.annotations import parse_namespace_query, resolve_target_namespaces
from sync_secrets.errors import AnnotationError, ClientError, NoAnnotationError
from sync_secrets.kubernetes.client import ClusterClient


class TestParseNamespaceQuery:
    """Tests for annotation precedence."""

    def test_both_annotations_are_exclusive(self) -> None:
        """Test both policy annotations together are rejected."""
        with pytest.raises(AnnotationError, match="cannot be used together"):
            parse_namespace_query(
                {ALL_NAMESPACES_ANNOTATION: "true", NAMESPACE_SELECTOR_ANNOTATION: "env=prod"}
            )

    @pytest.mark.parametrize("value", ["true", "True", "TRUE"])
    def test_all_namespaces_true(self, value: str) -> None:
        """Test all-namespaces accepts 'true' case-insensitively."""
        query = parse_namespace_query({ALL_NAMESPACES_ANNOTATION: value})

        assert query.all_namespaces
        assert query.selector is None

    @pytest.mark.parametrize("value", ["false", "yes", "1", ""])
    def test_all_namespaces_other_values(self, value: str) -> None:
        """Test any other all-namespaces value is a misconfiguration."""
        with pytest.raises(AnnotationError) as exc_info:
            parse_namespace_query({ALL_NAMESPACES_ANNOTATION: value})

        assert exc_info.value.details == {"value": value}

    def test_selector(self) -> None:
        """Test a valid selector becomes the namespace query."""
        query = parse_namespace_query({NAMESPACE_SELECTOR_ANNOTATION: "env=prod"})

        assert not query.all_namespaces
        assert str(query.selector) == "env=prod"

    def test_invalid_selector(self) -> None:
        """Test an unparsable selector is a misconfiguration."""
        with pytest.raises(AnnotationError, match="failed to parse"):
            parse_namespace_query({NAMESPACE_SELECTOR_ANNOTATION: "env in ()"})

    @pytest.mark.parametrize("annotations", [None, {}, {"team": "platform"}])
    def test_no_annotation(self, annotations: dict[str, str] | None) -> None:
        """Test unmanaged secrets are reported distinctly."""
        with pytest.raises(NoAnnotationError):
            parse_namespace_query(annotations)

    def test_no_annotation_is_not_annotation_error(self) -> None:
        """Test callers can tell unmanaged from misconfigured."""
        assert not issubclass(NoAnnotationError, AnnotationError)


class TestResolveTargetNamespaces:
    """Tests for namespace resolution against the cluster."""

    def test_all_namespaces_excludes_own_namespace(self, cluster_client: ClusterClient) -> None:
        """Test the owner's namespace is never a target."""
        namespaces = resolve_target_namespaces(
            cluster_client, {ALL_NAMESPACES_ANNOTATION: "true"}, "default"
        )

        assert sorted(namespaces) == ["kube-system", "ns-a"]

    def test_ignored_namespaces_excluded(self, cluster_client: ClusterClient) -> None:
        """Test ignored namespaces are never targets."""
        namespaces = resolve_target_namespaces(
            cluster_client,
            {ALL_NAMESPACES_ANNOTATION: "true"},
            "default",
            ignored_namespaces=["kube-system"],
        )

        assert namespaces == ["ns-a"]

    def test_selector_filters_namespaces(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test the selector is evaluated against namespace labels."""
        fake_api.add_namespace("ns-b", {"env": "dev"})

        namespaces = resolve_target_namespaces(
            cluster_client, {NAMESPACE_SELECTOR_ANNOTATION: "env in (prod)"}, "default"
        )

        assert namespaces == ["ns-a"]

    def test_selector_matching_own_namespace(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test a selector matching the owner's namespace still excludes it."""
        fake_api.label_namespace("default", {"env": "prod"})

        namespaces = resolve_target_namespaces(
            cluster_client, {NAMESPACE_SELECTOR_ANNOTATION: "env=prod"}, "default"
        )

        assert namespaces == ["ns-a"]

    def test_list_failure_is_client_error(self, fake_api, cluster_client: ClusterClient) -> None:
        """Test namespace listing failures surface as retryable errors."""
        fake_api.fail("list", "", status=503)

        with pytest.raises(ClientError) as exc_info:
            resolve_target_namespaces(
                cluster_client, {ALL_NAMESPACES_ANNOTATION: "true"}, "default"
            )

        assert exc_info.value.retryable
        assert exc_info.value.status == 503

    def test_invalid_annotation_does_not_list(
        self, fake_api, cluster_client: ClusterClient
    ) -> None:
        """Test misconfigured secrets never reach the API."""
        with pytest.raises(AnnotationError):
            resolve_target_namespaces(
                cluster_client, {ALL_NAMESPACES_ANNOTATION: "no"}, "default"
            )

        assert fake_api.calls == []
