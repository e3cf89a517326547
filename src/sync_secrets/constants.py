"""Annotation and label keys recognized on secrets."""

ANNOTATION_PREFIX = "secret.sync.klst.pw"

# Replication policy (owner secrets only)
ALL_NAMESPACES_ANNOTATION = f"{ANNOTATION_PREFIX}/all-namespaces"
NAMESPACE_SELECTOR_ANNOTATION = f"{ANNOTATION_PREFIX}/namespace-selector"

POLICY_ANNOTATIONS = (ALL_NAMESPACES_ANNOTATION, NAMESPACE_SELECTOR_ANNOTATION)

# Provenance (written onto replicas)
ORIGIN_NAME_LABEL = f"{ANNOTATION_PREFIX}/origin.name"
ORIGIN_NAMESPACE_LABEL = f"{ANNOTATION_PREFIX}/origin.namespace"

# Owner reference written onto replicas
OWNER_API_VERSION = "v1"
OWNER_KIND = "Secret"
