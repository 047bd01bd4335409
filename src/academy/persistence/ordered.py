"""SQL implementation of the sequencer's ordered store.

One ``SqlOrderedStore`` per ordered table, parameterized by the column that
names the parent scope:

    contents = SqlOrderedStore(factory, CourseContentTable, "course_id")
    quizzes = SqlOrderedStore(factory, QuizTable, "course_content_id")

``lock_scope`` takes ``SELECT ... FOR UPDATE`` on the parent row the scope
column references (the course of a content, the content of a quiz), so
concurrent reorders of one scope serialize on PostgreSQL, including the first
insert into an empty scope.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy.errors import NotFoundError
from academy.ordering.base import OrderedItem
from academy.persistence.tables import Base

_ORDERING_FIELDS = ("id", "index", "isDeleted")


class SqlOrderedTransaction:
    """OrderedTransaction bound to an open session."""

    def __init__(self, session: AsyncSession, table: type[Base], scope_column: str, resource: str):
        self.session = session
        self.table: Any = table
        self.scope_column = scope_column
        self.scope = getattr(table, scope_column)
        (foreign_key,) = table.__table__.c[scope_column].foreign_keys
        self.parent_key = foreign_key.column
        self.resource = resource

    def _item(self, row: Any) -> OrderedItem:
        doc = row.to_doc()
        return OrderedItem(
            id=row.id,
            scope_id=getattr(row, self.scope_column),
            index=row.index,
            is_deleted=row.is_deleted,
            data={k: v for k, v in doc.items() if k not in _ORDERING_FIELDS},
        )

    def _active(self, scope_id: str) -> Any:
        return (self.scope == scope_id) & (self.table.is_deleted.is_(False))

    async def _row(self, item_id: str) -> Any:
        stmt = (
            select(self.table)
            .where(self.table.id == item_id)
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get(self, item_id: str) -> OrderedItem | None:
        row = await self._row(item_id)
        return self._item(row) if row is not None else None

    async def lock_scope(self, scope_id: str) -> None:
        # The parent row exists even while the scope has no active items
        await self.session.execute(
            select(self.parent_key).where(self.parent_key == scope_id).with_for_update()
        )

    async def count_active(self, scope_id: str) -> int:
        stmt = select(func.count()).select_from(self.table).where(self._active(scope_id))
        return int((await self.session.execute(stmt)).scalar_one())

    async def list_active(self, scope_id: str) -> list[OrderedItem]:
        stmt = (
            select(self.table)
            .where(self._active(scope_id))
            .order_by(self.table.index.asc(), self.table.created_at.asc(), self.table.id.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [self._item(row) for row in result.scalars()]

    async def shift(self, scope_id: str, start: int, end: int | None, delta: int) -> list[str]:
        condition = self._active(scope_id) & (self.table.index >= start)
        if end is not None:
            condition = condition & (self.table.index <= end)
        stmt = (
            update(self.table)
            .where(condition)
            .values(index=self.table.index + delta)
            .returning(self.table.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def place(self, item_id: str, index: int | None, is_deleted: bool) -> OrderedItem:
        row = await self._row(item_id)
        if row is None:
            raise NotFoundError(self.resource, item_id)
        row.index = index
        row.is_deleted = is_deleted
        await self.session.flush()
        await self.session.refresh(row)
        return self._item(row)

    async def insert(self, scope_id: str, index: int, data: dict[str, Any]) -> OrderedItem:
        values = self.table.values_from_doc(data)
        values.update({self.scope_column: scope_id, "index": index, "is_deleted": False})
        row = self.table(**values)
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return self._item(row)


class SqlOrderedStore:
    """OrderedStore over one SQL table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        table: type[Base],
        scope_column: str,
        resource: str | None = None,
    ):
        self.session_factory = session_factory
        self.table = table
        self.scope_column = scope_column
        self.resource = resource or table.__name__.removesuffix("Table")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlOrderedTransaction]:
        async with self.session_factory() as session:
            async with session.begin():
                yield SqlOrderedTransaction(session, self.table, self.scope_column, self.resource)
