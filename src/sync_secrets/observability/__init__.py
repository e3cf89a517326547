"""Sync Secrets Observability package.

Logging and metrics for the Sync Secrets operator.
"""

from sync_secrets.observability.logging import LogContext, configure_logging, get_logger
from sync_secrets.observability.metrics import MetricsCollector, get_metrics

__all__ = ["LogContext", "MetricsCollector", "configure_logging", "get_logger", "get_metrics"]
