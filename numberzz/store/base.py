"""
Persistent Store Adapter contract.

The store is the sole long-lived owner of authoritative state. It exposes
row-oriented operations for the four record families and, critically, a
conditional update: the precondition is evaluated against the stored row at
write time, never against a caller's cached copy.

Predicates are equality maps: {"owner": None, "is_free_to_claim": True}
matches rows whose owner IS NULL and is_free_to_claim is true.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from numberzz.models.failure import CollaboratorTimeout
from numberzz.models.records import Table

logger = logging.getLogger(__name__)

Row = dict[str, Any]
Where = Mapping[str, Any]


@dataclass(frozen=True)
class CountOf:
    """
    Patch value computed inside the store at write time.

    Evaluates to the number of rows in `table` matching `where`, in the
    same atomic step as the update it belongs to.
    """

    table: Table
    where: Mapping[str, Any]


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed row change, published after the write is durable."""

    table: Table
    kind: ChangeKind
    key: tuple[Any, ...]
    row: Row | None


ChangeHandler = Callable[[ChangeEvent], Awaitable[None] | None]


def matches(row: Mapping[str, Any], where: Where) -> bool:
    """True if every predicate field equals the row's value."""
    return all(row.get(name) == value for name, value in where.items())


class ChangeFeed:
    """Per-table fan-out of committed changes to subscribers."""

    def __init__(self) -> None:
        self._handlers: dict[Table, list[ChangeHandler]] = defaultdict(list)

    def subscribe(self, table: Table, handler: ChangeHandler) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        self._handlers[table].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[table]:
                self._handlers[table].remove(handler)

        return unsubscribe

    async def publish(self, event: ChangeEvent) -> None:
        for handler in list(self._handlers[event.table]):
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                # A broken observer must not undo a committed write
                logger.exception(
                    "Change handler failed for %s %s %s",
                    event.table.value,
                    event.kind.value,
                    event.key,
                )


class Store(ABC):
    """Row store shared by every viewer."""

    name = "store"

    def __init__(self) -> None:
        self.feed = ChangeFeed()

    def subscribe(self, table: Table, handler: ChangeHandler) -> Callable[[], None]:
        return self.feed.subscribe(table, handler)

    @abstractmethod
    async def load_all(self, table: Table) -> list[Row]:
        """All rows of a table."""

    @abstractmethod
    async def get(self, table: Table, key: Sequence[Any]) -> Row | None:
        """One row by primary key, or None."""

    @abstractmethod
    async def select(self, table: Table, where: Where) -> list[Row]:
        """Rows matching an equality predicate."""

    @abstractmethod
    async def insert(self, table: Table, row: Row) -> bool:
        """
        Insert a row if its key is free.

        Returns False (and writes nothing) if the key already exists.
        """

    @abstractmethod
    async def upsert(self, table: Table, rows: Sequence[Row]) -> list[Row]:
        """Insert or replace rows by primary key. Returns the stored rows."""

    @abstractmethod
    async def update_where(
        self,
        table: Table,
        key: Sequence[Any],
        where: Where,
        patch: Mapping[str, Any],
    ) -> Row | None:
        """
        Conditional update.

        Applies `patch` to the row with `key` only if it currently satisfies
        `where`. Returns the updated row, or None if the row is missing or
        the predicate failed. Patch values may be CountOf expressions.
        """

    @abstractmethod
    async def delete(self, table: Table, where: Where) -> int:
        """Delete rows matching `where` (empty = all). Returns count deleted."""

    async def ping(self) -> None:
        """Round-trip check used by readiness probes."""
        await self.select(Table.ITEMS, {"id": "__ping__"})

    async def close(self) -> None:
        """Release resources."""


async def with_timeout(awaitable: Awaitable[Any], timeout: float, collaborator: str) -> Any:
    """
    Await a collaborator call with a deadline.

    Raises:
        CollaboratorTimeout: If no response arrives in time
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        raise CollaboratorTimeout(collaborator, timeout) from e
