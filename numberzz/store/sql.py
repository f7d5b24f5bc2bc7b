"""
Shared SQL store.

Every viewer talking to the same database sees the same rows. Each
conditional update is a single UPDATE ... WHERE statement in its own
transaction, so the database decides which of two racing writers wins.
Committed changes are published on the store's change feed.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import ColumnElement, Table as SATable, delete, func, insert, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from numberzz.models.db import CertificateDB, InterestedBuyerDB, ItemDB, SaleContractDB
from numberzz.models.failure import CollaboratorUnavailable
from numberzz.models.records import TABLE_FIELDS, TABLE_KEYS, Table, row_key
from numberzz.store.base import ChangeEvent, ChangeKind, CountOf, Row, Store, Where

logger = logging.getLogger(__name__)

TABLE_MODELS: dict[Table, SATable] = {
    Table.ITEMS: ItemDB.__table__,  # type: ignore[dict-item]
    Table.SALE_CONTRACTS: SaleContractDB.__table__,  # type: ignore[dict-item]
    Table.CERTIFICATES: CertificateDB.__table__,  # type: ignore[dict-item]
    Table.INTERESTED_BUYERS: InterestedBuyerDB.__table__,  # type: ignore[dict-item]
}


def _clauses(sa_table: SATable, where: Mapping[str, Any]) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    for name, value in where.items():
        column = sa_table.c[name]
        clauses.append(column.is_(None) if value is None else column == value)
    return clauses


def _key_where(table: Table, key: Sequence[Any]) -> dict[str, Any]:
    return dict(zip(TABLE_KEYS[table], key, strict=True))


class SqlStore(Store):
    """Store backed by an async SQLAlchemy engine."""

    name = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__()
        self._session_factory = session_factory

    def _columns(self, table: Table) -> list[Any]:
        sa_table = TABLE_MODELS[table]
        return [sa_table.c[name] for name in TABLE_FIELDS[table]]

    async def _fetch(self, session: AsyncSession, table: Table, where: Where) -> list[Row]:
        sa_table = TABLE_MODELS[table]
        stmt = select(*self._columns(table))
        clauses = _clauses(sa_table, where)
        if clauses:
            stmt = stmt.where(*clauses)
        stmt = stmt.order_by(*(sa_table.c[name] for name in TABLE_KEYS[table]))
        result = await session.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def load_all(self, table: Table) -> list[Row]:
        return await self.select(table, {})

    async def get(self, table: Table, key: Sequence[Any]) -> Row | None:
        rows = await self.select(table, _key_where(table, key))
        return rows[0] if rows else None

    async def select(self, table: Table, where: Where) -> list[Row]:
        try:
            async with self._session_factory() as session:
                return await self._fetch(session, table, where)
        except SQLAlchemyError as e:
            logger.error("Select on %s failed: %s", table.value, e)
            raise CollaboratorUnavailable(self.name, detail=type(e).__name__) from e

    async def insert(self, table: Table, row: Row) -> bool:
        values = {name: row.get(name) for name in TABLE_FIELDS[table]}
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(insert(TABLE_MODELS[table]).values(**values))
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            logger.error("Insert into %s failed: %s", table.value, e)
            raise CollaboratorUnavailable(self.name, detail=type(e).__name__) from e

        await self.feed.publish(ChangeEvent(table, ChangeKind.INSERT, row_key(table, values), values))
        return True

    def _upsert_statement(self, session: AsyncSession, table: Table, values: Row) -> Any:
        sa_table = TABLE_MODELS[table]
        dialect = session.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert_fn(sa_table).values(**values)
        keys = TABLE_KEYS[table]
        return stmt.on_conflict_do_update(
            index_elements=list(keys),
            set_={name: stmt.excluded[name] for name in values if name not in keys},
        )

    async def upsert(self, table: Table, rows: Sequence[Row]) -> list[Row]:
        if not rows:
            return []
        stored = [{name: row.get(name) for name in TABLE_FIELDS[table]} for row in rows]
        events: list[ChangeEvent] = []
        try:
            async with self._session_factory() as session, session.begin():
                for values in stored:
                    key = row_key(table, values)
                    existing = await self._fetch(session, table, _key_where(table, key))
                    await session.execute(self._upsert_statement(session, table, values))
                    kind = ChangeKind.UPDATE if existing else ChangeKind.INSERT
                    events.append(ChangeEvent(table, kind, key, values))
        except SQLAlchemyError as e:
            logger.error("Upsert into %s failed: %s", table.value, e)
            raise CollaboratorUnavailable(self.name, detail=type(e).__name__) from e

        for event in events:
            await self.feed.publish(event)
        return stored

    def _patch_value(self, value: Any) -> Any:
        if isinstance(value, CountOf):
            child = TABLE_MODELS[value.table]
            return (
                select(func.count())
                .select_from(child)
                .where(*_clauses(child, value.where))
                .scalar_subquery()
            )
        return value

    async def update_where(
        self,
        table: Table,
        key: Sequence[Any],
        where: Where,
        patch: Mapping[str, Any],
    ) -> Row | None:
        sa_table = TABLE_MODELS[table]
        key_where = _key_where(table, key)
        stmt = (
            update(sa_table)
            .where(*_clauses(sa_table, key_where), *_clauses(sa_table, where))
            .values({name: self._patch_value(value) for name, value in patch.items()})
        )
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(stmt)
                # rowcount is available on UPDATE results; type stubs incomplete for async
                if int(result.rowcount) == 0:  # type: ignore[attr-defined]
                    return None
                rows = await self._fetch(session, table, key_where)
        except SQLAlchemyError as e:
            logger.error("Conditional update on %s %s failed: %s", table.value, key, e)
            raise CollaboratorUnavailable(self.name, detail=type(e).__name__) from e

        row = rows[0]
        await self.feed.publish(ChangeEvent(table, ChangeKind.UPDATE, tuple(key), row))
        return row

    async def delete(self, table: Table, where: Where) -> int:
        sa_table = TABLE_MODELS[table]
        stmt = delete(sa_table)
        clauses = _clauses(sa_table, where)
        if clauses:
            stmt = stmt.where(*clauses)
        try:
            async with self._session_factory() as session, session.begin():
                doomed = await self._fetch(session, table, where)
                await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Delete from %s failed: %s", table.value, e)
            raise CollaboratorUnavailable(self.name, detail=type(e).__name__) from e

        for row in doomed:
            await self.feed.publish(ChangeEvent(table, ChangeKind.DELETE, row_key(table, row), row))
        return len(doomed)

    async def ping(self) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise CollaboratorUnavailable(self.name, detail=type(e).__name__) from e
