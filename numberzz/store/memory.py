"""
Local-only store mirror.

Keeps every table in process memory. One asyncio.Lock covers the
check-and-write of each operation, so conditional updates are atomic
for every viewer sharing this instance.
"""

import asyncio
import copy
from collections.abc import Mapping, Sequence
from typing import Any

from numberzz.models.records import TABLE_FIELDS, Table, row_key
from numberzz.store.base import ChangeEvent, ChangeKind, CountOf, Row, Store, Where, matches


class MemoryStore(Store):
    """In-process store with the same semantics as the shared SQL store."""

    name = "memory store"

    def __init__(self) -> None:
        super().__init__()
        self._tables: dict[Table, dict[tuple[Any, ...], Row]] = {table: {} for table in Table}
        self._lock = asyncio.Lock()

    def _normalize(self, table: Table, row: Mapping[str, Any]) -> Row:
        # Missing columns read back as None, like a nullable SQL column
        return {name: copy.deepcopy(row.get(name)) for name in TABLE_FIELDS[table]}

    async def load_all(self, table: Table) -> list[Row]:
        async with self._lock:
            return [copy.deepcopy(row) for row in self._tables[table].values()]

    async def get(self, table: Table, key: Sequence[Any]) -> Row | None:
        async with self._lock:
            row = self._tables[table].get(tuple(key))
            return copy.deepcopy(row) if row is not None else None

    async def select(self, table: Table, where: Where) -> list[Row]:
        async with self._lock:
            return [
                copy.deepcopy(row) for row in self._tables[table].values() if matches(row, where)
            ]

    async def insert(self, table: Table, row: Row) -> bool:
        stored = self._normalize(table, row)
        key = row_key(table, stored)
        async with self._lock:
            if key in self._tables[table]:
                return False
            self._tables[table][key] = stored
        await self.feed.publish(ChangeEvent(table, ChangeKind.INSERT, key, copy.deepcopy(stored)))
        return True

    async def upsert(self, table: Table, rows: Sequence[Row]) -> list[Row]:
        events: list[ChangeEvent] = []
        async with self._lock:
            for row in rows:
                stored = self._normalize(table, row)
                key = row_key(table, stored)
                kind = ChangeKind.UPDATE if key in self._tables[table] else ChangeKind.INSERT
                self._tables[table][key] = stored
                events.append(ChangeEvent(table, kind, key, copy.deepcopy(stored)))
        for event in events:
            await self.feed.publish(event)
        return [copy.deepcopy(event.row) for event in events if event.row is not None]

    def _evaluate(self, value: Any) -> Any:
        if isinstance(value, CountOf):
            return sum(1 for row in self._tables[value.table].values() if matches(row, value.where))
        return copy.deepcopy(value)

    async def update_where(
        self,
        table: Table,
        key: Sequence[Any],
        where: Where,
        patch: Mapping[str, Any],
    ) -> Row | None:
        key = tuple(key)
        async with self._lock:
            current = self._tables[table].get(key)
            if current is None or not matches(current, where):
                return None
            updated = {**current, **{name: self._evaluate(v) for name, v in patch.items()}}
            self._tables[table][key] = updated
            snapshot = copy.deepcopy(updated)
        await self.feed.publish(ChangeEvent(table, ChangeKind.UPDATE, key, copy.deepcopy(snapshot)))
        return snapshot

    async def delete(self, table: Table, where: Where) -> int:
        async with self._lock:
            doomed = [key for key, row in self._tables[table].items() if matches(row, where)]
            removed = [(key, self._tables[table].pop(key)) for key in doomed]
        for key, row in removed:
            await self.feed.publish(ChangeEvent(table, ChangeKind.DELETE, key, row))
        return len(removed)
