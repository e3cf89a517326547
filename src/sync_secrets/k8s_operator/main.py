"""Sync Secrets Kubernetes Operator.

Main entry point for the operator that replicates annotated secrets into
other namespaces, using the Kopf framework.

Usage:
    # Run in development mode (console logs, verbose)
    python -m sync_secrets.k8s_operator.main --dev --verbose

    # Never replicate into kube-system
    python -m sync_secrets.k8s_operator.main --ignore-namespace kube-system

    # Run with peering for multi-instance deployment
    python -m sync_secrets.k8s_operator.main --peering=sync-secrets
"""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

import kopf
from pydantic import ValidationError

from sync_secrets.config.settings import SyncSettings, get_settings

# Import handlers to register their decorators
# This must happen before kopf.run() is called
from sync_secrets.k8s_operator import handlers  # noqa: F401
from sync_secrets.observability.logging import configure_logging, get_logger
from sync_secrets.version import __version__


logger = get_logger(__name__)

# Priority kopf itself gives to ``kopf run --dev``
DEV_PRIORITY = 666


def main(
    namespace: str | None = None,
    peering_name: str | None = None,
    liveness_port: int | None = None,
    priority: int = 0,
    dev_mode: bool = False,
) -> NoReturn:
    """Main entry point for the Sync Secrets operator.

    Runs kopf with all registered handlers. Blocks until the operator is
    stopped.

    Args:
        namespace: Namespace to watch. If None, watches the whole cluster.
        peering_name: Name for operator peering (multi-instance coordination).
            If None, uses the configured one; without any, runs standalone.
        liveness_port: Port for the liveness endpoint. If None, uses settings.
        priority: Operator priority for peering (higher = more preferred).
        dev_mode: If True, takes over from other operators in the same peering.

    Raises:
        SystemExit: Never returns normally, exits with code 0 on success
    """
    settings = get_settings()
    peering_name = peering_name or settings.kubernetes.peering_name
    liveness_port = liveness_port or settings.observability.liveness_port
    standalone = settings.kubernetes.standalone and peering_name is None
    if dev_mode:
        priority = max(priority, DEV_PRIORITY)

    logger.info(
        "operator_starting",
        version=__version__,
        namespace=namespace or "all",
        peering=peering_name,
        standalone=standalone,
        liveness_port=liveness_port,
        dev_mode=dev_mode,
    )

    kopf_settings = kopf.OperatorSettings()
    kopf_settings.posting.enabled = False
    if peering_name:
        kopf_settings.peering.name = peering_name
        kopf_settings.peering.priority = priority

    try:
        kopf.run(
            settings=kopf_settings,
            standalone=standalone,
            priority=priority,
            peering_name=peering_name,
            liveness_endpoint=f"http://0.0.0.0:{liveness_port}/healthz",
            clusterwide=namespace is None,
            namespaces=[namespace] if namespace else (),
        )

    except KeyboardInterrupt:
        logger.info("operator_stopped_by_user")
        sys.exit(0)

    except Exception as error:
        logger.exception(
            "operator_crashed",
            error=str(error),
            error_type=type(error).__name__,
        )
        raise

    sys.exit(0)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="sync-secrets-operator",
        description="Sync Secrets operator - replicate secrets across namespaces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch the whole cluster
  sync-secrets-operator

  # Never replicate into system namespaces
  sync-secrets-operator --ignore-namespace kube-system --ignore-namespace kube-public

  # Keep a label off every replica
  sync-secrets-operator --protected-label app.kubernetes.io/managed-by

Environment Variables:
  SYNC_SECRETS_SYNC_IGNORED_NAMESPACES  - JSON list of ignored namespaces
  SYNC_SECRETS_SYNC_REQUEUE_AFTER       - Retry delay in seconds
  SYNC_SECRETS_K8S_PEERING_NAME         - Peering name for multi-instance
  SYNC_SECRETS_OBSERVABILITY_LOG_LEVEL  - Logging level
        """,
    )

    parser.add_argument(
        "--ignore-namespace",
        action="append",
        default=None,
        metavar="NAMESPACE",
        help="Namespace never used as a replication source or target (repeatable)",
    )
    parser.add_argument(
        "--protected-label",
        action="append",
        default=None,
        metavar="KEY",
        help="Label never copied onto replicas (repeatable)",
    )
    parser.add_argument(
        "--protected-annotation",
        action="append",
        default=None,
        metavar="KEY",
        help="Annotation never copied onto replicas (repeatable)",
    )
    parser.add_argument(
        "--requeue-after",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Delay before retrying a failed reconciliation",
    )
    parser.add_argument(
        "--namespace",
        "-n",
        type=str,
        default=None,
        help="Kubernetes namespace to watch (default: all namespaces)",
    )
    parser.add_argument(
        "--peering",
        type=str,
        default=None,
        help="Peering name for multi-instance coordination",
    )
    parser.add_argument(
        "--priority",
        type=int,
        default=0,
        help="Operator priority for peering (higher = preferred)",
    )
    parser.add_argument(
        "--liveness-port",
        type=int,
        default=None,
        help="Port for the liveness probe endpoint",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for the Prometheus metrics endpoint",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Run in development mode (console logs, takes over peering)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def apply_overrides(args: argparse.Namespace) -> None:
    """Apply command-line overrides on top of the loaded settings.

    Raises:
        ValidationError: An override is out of bounds.
    """
    settings = get_settings()

    sync_overrides: dict[str, object] = {}
    if args.ignore_namespace:
        sync_overrides["ignored_namespaces"] = args.ignore_namespace
    if args.protected_label:
        sync_overrides["protected_labels"] = args.protected_label
    if args.protected_annotation:
        sync_overrides["protected_annotations"] = args.protected_annotation
    if args.requeue_after is not None:
        sync_overrides["requeue_after"] = args.requeue_after
    if sync_overrides:
        settings.sync = SyncSettings(**{**settings.sync.model_dump(), **sync_overrides})

    if args.metrics_port is not None:
        settings.observability.metrics_port = args.metrics_port
    if args.dev:
        settings.observability.log_format = "console"
    if args.verbose:
        settings.observability.log_level = "DEBUG"


def cli(argv: list[str] | None = None) -> NoReturn:
    """CLI entry point for the sync-secrets-operator command.

    Parses command-line arguments, applies them over the environment
    settings and starts the operator.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        apply_overrides(args)
    except ValidationError as e:
        parser.error(str(e))

    settings = get_settings()
    configure_logging(
        level=settings.observability.log_level,
        format_type=settings.observability.log_format,
    )

    main(
        namespace=args.namespace,
        peering_name=args.peering,
        liveness_port=args.liveness_port,
        priority=args.priority,
        dev_mode=args.dev,
    )


if __name__ == "__main__":
    # Allow running as: python -m sync_secrets.k8s_operator.main
    cli()
