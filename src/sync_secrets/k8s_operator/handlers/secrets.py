"""Secret event handlers.

Every secret event is routed to one of two reconciliations: a secret owned
by another secret is a replica, anything else is a potential owner. Deletion
events are dispatched the same way; the reconcilers re-fetch the secret and
observe that it is gone.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any

import kopf

from sync_secrets.constants import OWNER_KIND
from sync_secrets.controller import ReconcileResult
from sync_secrets.k8s_operator.dispatcher import ReconcileDispatcher
from sync_secrets.observability.logging import get_logger
from sync_secrets.registry import NamespacedName


log = get_logger(__name__)


def is_replica(meta: Mapping[str, Any]) -> bool:
    """Return True if the secret described by ``meta`` is owned by a Secret."""
    return any(
        reference.get("kind") == OWNER_KIND for reference in meta.get("ownerReferences") or []
    )


@kopf.on.event("", "v1", "secrets")
async def secret_event_handler(
    event: MutableMapping[str, Any],
    meta: kopf.Meta,
    name: str | None,
    namespace: str | None,
    memo: kopf.Memo,
    **_kwargs: Any,
) -> ReconcileResult | None:
    """Dispatch owner or replica reconciliation for a secret event."""
    if not name or not namespace:
        return None

    dispatcher: ReconcileDispatcher = memo.dispatcher
    target = NamespacedName(namespace, name)
    event_type = event.get("type") or "INITIAL"

    if is_replica(meta):
        log.debug("replica_event", secret=str(target), event_type=event_type)
        return await dispatcher.dispatch_owned_secret(target)

    log.debug("secret_event", secret=str(target), event_type=event_type)
    return await dispatcher.dispatch_secret(target)


__all__ = ["is_replica", "secret_event_handler"]
