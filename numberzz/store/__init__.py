from numberzz.store.base import (
    ChangeEvent,
    ChangeFeed,
    ChangeKind,
    CountOf,
    Row,
    Store,
    Where,
    with_timeout,
)
from numberzz.store.memory import MemoryStore
from numberzz.store.sql import SqlStore

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeKind",
    "CountOf",
    "MemoryStore",
    "Row",
    "SqlStore",
    "Store",
    "Where",
    "with_timeout",
]
