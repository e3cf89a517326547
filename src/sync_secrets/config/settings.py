"""Sync Secrets settings configuration.

Uses Pydantic Settings for type-safe configuration management
with support for environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sync_secrets.constants import ORIGIN_NAME_LABEL, ORIGIN_NAMESPACE_LABEL
from sync_secrets.version import __version__


class SyncSettings(BaseSettings):
    """Replication behaviour configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_SECRETS_SYNC_",
        extra="ignore",
    )

    ignored_namespaces: list[str] = Field(
        default_factory=list,
        description="Namespaces never used as replication source or target",
    )
    protected_labels: list[str] = Field(
        default_factory=list,
        description="Labels never copied onto replicas",
    )
    protected_annotations: list[str] = Field(
        default_factory=list,
        description="Annotations never copied onto replicas",
    )
    requeue_after: float = Field(
        default=5.0,
        ge=1.0,
        le=300.0,
        description="Delay in seconds before retrying a failed reconciliation",
    )

    @field_validator("protected_labels", mode="after")
    @classmethod
    def validate_protected_labels(cls, v: list[str]) -> list[str]:
        """Provenance labels are always written and cannot be protected."""
        reserved = {ORIGIN_NAME_LABEL, ORIGIN_NAMESPACE_LABEL}.intersection(v)
        if reserved:
            msg = f"Cannot protect provenance labels: {', '.join(sorted(reserved))}"
            raise ValueError(msg)
        return v


class KubernetesSettings(BaseSettings):
    """Kubernetes configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_SECRETS_K8S_",
        extra="ignore",
    )

    in_cluster: bool = Field(
        default=False,
        description="Whether running inside a Kubernetes cluster",
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Path to kubeconfig file (if not in-cluster)",
    )
    context: str | None = Field(
        default=None,
        description="Kubernetes context to use",
    )
    peering_name: str | None = Field(
        default=None,
        description="Kopf peering name for multi-instance coordination",
    )
    standalone: bool = Field(
        default=True,
        description="Run without peering (single instance)",
    )
    api_timeout: int = Field(
        default=30,
        ge=1,
        description="Kubernetes API request timeout in seconds",
    )


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_SECRETS_OBSERVABILITY_",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )

    # Metrics
    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics",
    )
    metrics_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port for metrics endpoint",
    )
    metrics_namespace: str = Field(
        default="sync_secrets",
        description="Prometheus namespace prefix",
    )

    # Probes
    liveness_port: int = Field(
        default=8081,
        ge=1,
        le=65535,
        description="Port for the kopf liveness endpoint",
    )


class Settings(BaseSettings):
    """Main Sync Secrets configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_SECRETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # Application info
    version: str = Field(default=__version__)
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )

    # Nested settings
    sync: SyncSettings = Field(default_factory=SyncSettings)
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def is_production(self) -> bool:
        """True when running in the production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use this function to access settings throughout the application.
    Settings are cached after first load for performance.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()


def reload_settings() -> Settings:
    """Force reload settings (clears cache).

    Use this when you need to reload settings from environment
    or .env file, such as during testing.

    Returns:
        Settings: Fresh settings instance.
    """
    get_settings.cache_clear()
    return get_settings()
