"""Document repositories over SQLAlchemy.

``DocumentStore`` is the primary-store contract the cache and service layers
consume; ``SqlDocumentStore`` implements it for one table. Documents are
plain dicts with camelCase keys, exactly what ends up in the cache.

Outside ``transaction()`` every call runs in its own short transaction.
Inside it, all calls share one session and commit or roll back together:

    async with users.transaction() as tx:
        user = await tx.get(user_id)
        await tx.update(user_id, {"isUserVerified": not user["isUserVerified"]})
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Generic, Protocol, TypeVar

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy.errors import BadRequestError, NotFoundError
from academy.persistence.tables import Base

TableT = TypeVar("TableT", bound=Base)

Filter = dict[str, Any]
Search = tuple[str, Sequence[str]]


class DocumentStore(Protocol):
    """Authoritative per-entity CRUD with an atomic transaction primitive."""

    resource: str

    async def find_by_id(self, identifier: str) -> dict[str, Any] | None: ...

    async def get(self, identifier: str) -> dict[str, Any]: ...

    async def find_many(
        self,
        filter: Filter | None = None,
        *,
        search: Search | None = None,
        order_by: Sequence[tuple[str, str]] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]: ...

    async def count(self, filter: Filter | None = None, *, search: Search | None = None) -> int: ...

    async def create(self, doc: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, identifier: str, changes: dict[str, Any]) -> dict[str, Any]: ...

    def transaction(self) -> AsyncContextManager[DocumentStore]: ...


class SqlDocumentStore(Generic[TableT]):
    """DocumentStore for a single table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        table: type[TableT],
        resource: str | None = None,
        session: AsyncSession | None = None,
    ):
        self.session_factory = session_factory
        self.table = table
        self.resource = resource or table.__name__.removesuffix("Table")
        self._session = session

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            yield self._session
            return
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlDocumentStore[TableT]]:
        """Bind every call on the yielded store to one transaction."""
        if self._session is not None:
            yield self
            return
        async with self.session_factory() as session:
            async with session.begin():
                yield SqlDocumentStore(self.session_factory, self.table, self.resource, session)

    # -------------------------------------------------------------------------
    # Query building
    # -------------------------------------------------------------------------

    def _column(self, field: str) -> Any:
        try:
            return self.table.column_for(field)
        except KeyError:
            raise BadRequestError(f"Unknown field '{field}' for {self.resource}") from None

    def _where(self, stmt: Select[Any], filter: Filter | None, search: Search | None) -> Any:
        for field, value in (filter or {}).items():
            column = self._column(field)
            if isinstance(value, (list, tuple, set)):
                stmt = stmt.where(column.in_(list(value)))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == value)
        if search is not None:
            term, fields = search
            if term and fields:
                pattern = f"%{term}%"
                stmt = stmt.where(or_(*(self._column(f).ilike(pattern) for f in fields)))
        return stmt

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def find_by_id(self, identifier: str) -> dict[str, Any] | None:
        async with self._scope() as session:
            row = await session.get(self.table, identifier)
            return row.to_doc() if row is not None else None

    async def get(self, identifier: str) -> dict[str, Any]:
        """Like find_by_id but raises NotFoundError."""
        doc = await self.find_by_id(identifier)
        if doc is None:
            raise NotFoundError(self.resource, identifier)
        return doc

    async def find_many(
        self,
        filter: Filter | None = None,
        *,
        search: Search | None = None,
        order_by: Sequence[tuple[str, str]] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        stmt = self._where(select(self.table), filter, search)
        for field, direction in order_by:
            column = self._column(field)
            stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())
        # Stable ordering across pages
        stmt = stmt.order_by(self.table.id.asc())  # type: ignore[attr-defined]
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._scope() as session:
            result = await session.execute(stmt)
            return [row.to_doc() for row in result.scalars()]

    async def count(self, filter: Filter | None = None, *, search: Search | None = None) -> int:
        stmt = self._where(select(func.count()).select_from(self.table), filter, search)
        async with self._scope() as session:
            return int((await session.execute(stmt)).scalar_one())

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(self, doc: dict[str, Any]) -> dict[str, Any]:
        async with self._scope() as session:
            row = self.table(**self.table.values_from_doc(doc))
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return row.to_doc()

    async def update(self, identifier: str, changes: dict[str, Any]) -> dict[str, Any]:
        async with self._scope() as session:
            row = await session.get(self.table, identifier)
            if row is None:
                raise NotFoundError(self.resource, identifier)
            for name, value in self.table.values_from_doc(changes).items():
                setattr(row, name, value)
            await session.flush()
            await session.refresh(row)
            return row.to_doc()

