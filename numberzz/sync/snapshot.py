"""
Local snapshot cache.

Each viewer keeps a cached copy of the rows it has seen. Local mutations
are proposed here first and tagged provisional; any authoritative row for
the same key (a confirmed write or a feed event) overwrites the entry
unconditionally.
"""

import copy
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from numberzz.models.records import Table
from numberzz.store.base import ChangeEvent, ChangeKind, Row


@dataclass(frozen=True)
class SnapshotEntry:
    row: Row
    provisional: bool = False


class Snapshot:
    """Cached rows keyed by (table, primary key)."""

    def __init__(self) -> None:
        self._entries: dict[tuple[Table, tuple[Any, ...]], SnapshotEntry] = {}

    def get(self, table: Table, key: Sequence[Any]) -> Row | None:
        entry = self._entries.get((table, tuple(key)))
        return copy.deepcopy(entry.row) if entry is not None else None

    def entry(self, table: Table, key: Sequence[Any]) -> SnapshotEntry | None:
        return self._entries.get((table, tuple(key)))

    def is_provisional(self, table: Table, key: Sequence[Any]) -> bool:
        entry = self.entry(table, key)
        return entry is not None and entry.provisional

    def rows(self, table: Table) -> list[Row]:
        return [copy.deepcopy(e.row) for (t, _), e in self._entries.items() if t is table]

    def propose(self, table: Table, key: Sequence[Any], row: Row) -> None:
        """Record an optimistic local change awaiting confirmation."""
        self._entries[(table, tuple(key))] = SnapshotEntry(copy.deepcopy(row), provisional=True)

    def apply_authoritative(self, table: Table, key: Sequence[Any], row: Row | None) -> bool:
        """
        Overwrite an entry with the store's state. None means the row is gone.

        Returns False when the entry already held exactly this authoritative
        state, so repeated events for the same key are dropped.
        """
        slot = (table, tuple(key))
        current = self._entries.get(slot)

        if row is None:
            if current is None:
                return False
            del self._entries[slot]
            return True

        if current is not None and not current.provisional and current.row == row:
            return False
        self._entries[slot] = SnapshotEntry(copy.deepcopy(row))
        return True

    def apply_event(self, event: ChangeEvent) -> bool:
        row = None if event.kind is ChangeKind.DELETE else event.row
        return self.apply_authoritative(event.table, event.key, row)

    def forget(self, table: Table, key: Sequence[Any]) -> None:
        """Drop an entry whose state is unknown so the next read goes to the store."""
        self._entries.pop((table, tuple(key)), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
