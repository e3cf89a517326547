"""Sync Secrets Operator Handlers.

Kopf-based handlers:
- lifecycle.py: startup/cleanup and liveness probes
- secrets.py: owner and replica secret events
- namespaces.py: namespace events

All handlers are registered when this module is imported. The main
operator (main.py) invokes kopf.run() which activates them.
"""

from sync_secrets.k8s_operator.handlers import lifecycle, namespaces, secrets


__all__ = [
    "lifecycle",
    "namespaces",
    "secrets",
]
