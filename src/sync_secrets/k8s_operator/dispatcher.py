"""Reconciliation dispatch and retry scheduling.

The reconcilers are blocking (every Kubernetes call is synchronous), so they
run in worker threads. Passes touching the same secret name are serialized:
owner names are unique cluster-wide and every replica shares its owner's
name, so the bare name identifies everything a pass may mutate.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sync_secrets.controller import (
    ReconcileKind,
    ReconcileResult,
    SyncContext,
    reconcile_namespace,
    reconcile_owned_secret,
    reconcile_secret,
)
from sync_secrets.observability.logging import get_logger
from sync_secrets.registry import NamespacedName


log = get_logger(__name__)


@dataclass
class _NameLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class ReconcileDispatcher:
    """Runs reconciliations and re-runs those that asked for a retry.

    Attributes:
        ctx: Synchronization context shared by every pass
    """

    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx
        self._locks: dict[str, _NameLock] = {}
        self._locks_guard = threading.Lock()
        self._retries: dict[tuple[ReconcileKind, str], asyncio.Task[Any]] = {}

    # ------------------------------------------------------------------
    # Serialized, blocking passes
    # ------------------------------------------------------------------

    @contextmanager
    def _serialized(self, name: str) -> Iterator[None]:
        """Hold the lock for ``name``; the entry is dropped by its last user."""
        with self._locks_guard:
            entry = self._locks.get(name)
            if entry is None:
                entry = self._locks[name] = _NameLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[name]

    def run_secret(self, name: NamespacedName) -> ReconcileResult:
        with self._serialized(name.name):
            return reconcile_secret(self.ctx, name)

    def run_owned_secret(self, name: NamespacedName) -> ReconcileResult:
        with self._serialized(name.name):
            return reconcile_owned_secret(self.ctx, name)

    def run_namespace(self, name: str) -> ReconcileResult:
        # Each owner is locked individually, never the whole namespace pass
        return reconcile_namespace(self.ctx, name, reconcile_owner=self.run_secret)

    # ------------------------------------------------------------------
    # Async entry points used by the kopf handlers
    # ------------------------------------------------------------------

    async def dispatch_secret(self, name: NamespacedName) -> ReconcileResult:
        """Reconcile the owner secret ``name`` in a worker thread."""
        result = await asyncio.to_thread(self.run_secret, name)
        self._schedule_retry(
            ReconcileKind.SECRET,
            str(name),
            result,
            lambda: self.dispatch_secret(name),
        )
        return result

    async def dispatch_owned_secret(self, name: NamespacedName) -> ReconcileResult:
        """Reconcile the replica ``name`` in a worker thread."""
        result = await asyncio.to_thread(self.run_owned_secret, name)
        self._schedule_retry(
            ReconcileKind.OWNED_SECRET,
            str(name),
            result,
            lambda: self.dispatch_owned_secret(name),
        )
        return result

    async def dispatch_namespace(self, name: str) -> ReconcileResult:
        """Reconcile every registered owner after a change to namespace ``name``."""
        result = await asyncio.to_thread(self.run_namespace, name)
        self._schedule_retry(
            ReconcileKind.NAMESPACE,
            name,
            result,
            lambda: self.dispatch_namespace(name),
        )
        return result

    # ------------------------------------------------------------------
    # Retries
    # ------------------------------------------------------------------

    @property
    def pending_retries(self) -> int:
        return len(self._retries)

    def has_pending_retry(self, kind: ReconcileKind, target: str) -> bool:
        return (kind, target) in self._retries

    def _schedule_retry(
        self,
        kind: ReconcileKind,
        target: str,
        result: ReconcileResult,
        rerun: Callable[[], Awaitable[ReconcileResult]],
    ) -> None:
        if not result.requeue:
            return

        key = (kind, target)
        if key in self._retries:
            log.debug("retry_already_pending", reconcile_kind=kind.value, target=target)
            return

        delay = result.requeue_after
        if delay is None:
            delay = self.ctx.requeue_after
        log.info("retry_scheduled", reconcile_kind=kind.value, target=target, delay=delay)

        async def retry() -> None:
            await asyncio.sleep(delay)
            # Drop the entry first so the rerun may schedule the next attempt
            self._retries.pop(key, None)
            await rerun()

        task = asyncio.create_task(retry())
        self._retries[key] = task
        task.add_done_callback(lambda t: self._discard(key, t))

    def _discard(self, key: tuple[ReconcileKind, str], task: asyncio.Task[Any]) -> None:
        if self._retries.get(key) is task:
            del self._retries[key]
        if not task.cancelled() and task.exception() is not None:
            log.error("retry_failed", target=key[1], error=str(task.exception()))

    async def cancel_all(self) -> None:
        """Cancel every pending retry and wait for the tasks to finish."""
        tasks = list(self._retries.values())
        self._retries.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log.info("retries_cancelled", count=len(tasks))


__all__ = ["ReconcileDispatcher"]
