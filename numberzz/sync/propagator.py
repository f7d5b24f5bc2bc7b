"""
Sync propagator.

Fans committed changes out to other local viewers. It never decides
state: a broadcast only names the key that changed, and each receiver
re-reads that key from the store before touching its snapshot.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from numberzz.models.failure import CollaboratorUnavailable
from numberzz.models.records import Table
from numberzz.store.base import ChangeEvent, ChangeKind, Row, Store
from numberzz.sync.snapshot import Snapshot

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
ReceiveHandler = Callable[[Payload], Awaitable[None] | None]


class Broadcaster:
    """
    Same-process relay between viewers, one topic per table.

    Best-effort: a failing receiver is logged and skipped.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[ReceiveHandler]] = defaultdict(list)

    def on_receive(self, topic: str, handler: ReceiveHandler) -> Callable[[], None]:
        self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[topic]:
                self._handlers[topic].remove(handler)

        return unsubscribe

    async def broadcast(self, topic: str, payload: Payload) -> None:
        for handler in list(self._handlers[topic]):
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Broadcast receiver failed on %s", topic)


class SyncPropagator:
    """
    Keeps one viewer's snapshot in step with the store.

    Args:
        store: The store this viewer writes through
        snapshot: The viewer's cache
        broadcaster: Shared relay to other viewers, if any
        follow_feed: Apply the store's change feed directly. Viewers on a
            store without push updates set this False and rely on broadcasts.
    """

    def __init__(
        self,
        store: Store,
        snapshot: Snapshot,
        broadcaster: Broadcaster | None = None,
        follow_feed: bool = True,
    ):
        self.store = store
        self.snapshot = snapshot
        self.broadcaster = broadcaster
        self.follow_feed = follow_feed
        self.origin = uuid.uuid4().hex
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def running(self) -> bool:
        return bool(self._unsubscribers)

    def start(self) -> None:
        if self.running:
            return
        for table in Table:
            if self.follow_feed:
                self._unsubscribers.append(self.store.subscribe(table, self._on_change))
            if self.broadcaster is not None:
                self._unsubscribers.append(
                    self.broadcaster.on_receive(table.value, self._on_broadcast)
                )
        logger.debug("Sync propagator %s started", self.origin)

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    async def _on_change(self, event: ChangeEvent) -> None:
        row = None if event.kind is ChangeKind.DELETE else event.row
        await self.confirm(event.table, event.key, row)

    async def _on_broadcast(self, payload: Payload) -> None:
        if payload.get("origin") == self.origin:
            return
        table = Table(payload["table"])
        key = tuple(payload["key"])
        await self.refresh(table, key)

    async def confirm(self, table: Table, key: Sequence[Any], row: Row | None) -> bool:
        """
        Apply an authoritative row and tell other viewers if it changed.

        Returns whether the snapshot changed.
        """
        changed = self.snapshot.apply_authoritative(table, key, row)
        if changed and self.broadcaster is not None:
            await self.broadcaster.broadcast(
                table.value,
                {"origin": self.origin, "table": table.value, "key": list(key)},
            )
        return changed

    async def refresh(self, table: Table, key: Sequence[Any]) -> Row | None:
        """Re-read one key from the store into the snapshot."""
        try:
            row = await self.store.get(table, key)
        except CollaboratorUnavailable as e:
            logger.warning("Could not refresh %s %s: %s", table.value, tuple(key), e.detail)
            self.snapshot.forget(table, key)
            raise
        self.snapshot.apply_authoritative(table, key, row)
        return row
