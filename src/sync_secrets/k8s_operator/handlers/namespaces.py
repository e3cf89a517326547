"""Namespace event handlers."""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any

import kopf

from sync_secrets.controller import ReconcileResult
from sync_secrets.k8s_operator.dispatcher import ReconcileDispatcher
from sync_secrets.observability.logging import get_logger


log = get_logger(__name__)


@kopf.on.event("", "v1", "namespaces")
async def namespace_event_handler(
    event: MutableMapping[str, Any],
    name: str | None,
    memo: kopf.Memo,
    **_kwargs: Any,
) -> ReconcileResult | None:
    """Re-evaluate every registered owner when a namespace changes.

    The initial listing is skipped: owners are discovered from their own
    initial secret events, which already resolve the current namespaces.
    """
    if not name or event.get("type") is None:
        return None

    dispatcher: ReconcileDispatcher = memo.dispatcher
    log.debug("namespace_event", namespace=name, event_type=event.get("type"))
    return await dispatcher.dispatch_namespace(name)


__all__ = ["namespace_event_handler"]
