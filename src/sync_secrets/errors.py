"""Structured errors raised while synchronizing secrets.

Each error carries a stable ``code`` and a ``retryable`` flag. The reconcilers
are the only place where these errors are turned into a retry or ignore
decision.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from kubernetes.client import ApiException


class SyncError(RuntimeError):
    """Base class for every synchronization failure."""

    default_code = "sync_error"
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool | None = None,
        details: dict[str, Any] | None = None,
        timestamp: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.retryable = self.default_retryable if retryable is None else retryable
        self.details = details or {}
        self.timestamp = timestamp or datetime.now(UTC).isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for logs."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        """Serialize the error as a compact JSON string."""
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=True)


class NoAnnotationError(SyncError):
    """The secret carries no replication annotation: it is unmanaged."""

    default_code = "no_annotation"


class AnnotationError(SyncError):
    """The replication annotations of a secret are misconfigured."""

    default_code = "invalid_annotation"


class RegistryError(SyncError):
    """An internal registry invariant would be violated."""

    default_code = "registry_error"


class NameConflictError(RegistryError):
    """Another owner with the same secret name is already registered."""

    default_code = "name_conflict"

    def __init__(self, name: str) -> None:
        super().__init__(
            f"secret name '{name}' already exists; "
            "this can create conflicts during synchronization",
            details={"name": name},
        )
        self.name = name


class SecretNotFoundError(RegistryError):
    """A registry lookup did not match any record."""

    default_code = "not_found"

    def __init__(self, field: str, value: str) -> None:
        super().__init__(
            f"secret with the given {field} '{value}' not found",
            details={"field": field, "value": value},
        )
        self.field = field
        self.value = value


class ClientError(SyncError):
    """A call to the Kubernetes API failed."""

    default_code = "client_error"
    default_retryable = True

    @property
    def status(self) -> int | None:
        """HTTP status of the underlying API failure, if any."""
        return self.details.get("status")

    @classmethod
    def from_api_exception(cls, action: str, error: ApiException) -> ClientError:
        """Wrap a Kubernetes ``ApiException`` raised while performing ``action``."""
        return cls(
            f"failed to {action}: {error.reason or error}",
            details={"status": error.status, "reason": error.reason, "action": action},
        )


def ensure_sync_error(
    error: Exception,
    *,
    details: dict[str, Any] | None = None,
) -> SyncError:
    """Normalize unknown exceptions into a retryable ``ClientError``."""
    if isinstance(error, SyncError):
        return error

    merged_details = dict(details or {})
    merged_details.setdefault("exception_type", type(error).__name__)

    return ClientError(
        str(error) or "Unknown synchronization error",
        code="unexpected_error",
        details=merged_details,
    )


__all__ = [
    "AnnotationError",
    "ClientError",
    "NameConflictError",
    "NoAnnotationError",
    "RegistryError",
    "SecretNotFoundError",
    "SyncError",
    "ensure_sync_error",
]
