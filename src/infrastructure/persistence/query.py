"""Composable, lazily evaluated entity queries.

EntityQuery wraps a SQLAlchemy Select over one entity type.  Builder methods
(where, order_by, limit, offset, options) return new queries; nothing touches
the database until a terminal method (all, first, one_or_none, count,
exists) runs.

Tracked queries load rows through the unit of work's session, so returned
instances are in its identity map and later changes are flushed by the next
save.  Untracked queries load rows through a short-lived session bound to the
same connection (and therefore the same transaction): they see the same
data, but the instances they return are detached snapshots that the unit of
work never flushes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.engine import ScalarResult
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

TEntity = TypeVar("TEntity")
TResult = TypeVar("TResult")
TQuery = TypeVar("TQuery", bound="_QueryBase[Any]")


class _QueryBase(Generic[TEntity]):
    def __init__(
        self,
        session: Any,
        entity_type: type[TEntity],
        statement: Select,
        tracked: bool,
    ) -> None:
        self._session = session
        self._entity_type = entity_type
        self._statement = statement
        self._tracked = tracked

    @property
    def statement(self) -> Select:
        return self._statement

    @property
    def tracked(self) -> bool:
        return self._tracked

    @property
    def entity_type(self) -> type[TEntity]:
        return self._entity_type

    def _derive(self: TQuery, statement: Select) -> TQuery:
        return type(self)(self._session, self._entity_type, statement, self._tracked)

    def where(self: TQuery, *criteria: Any) -> TQuery:
        return self._derive(self._statement.where(*criteria))

    def order_by(self: TQuery, *clauses: Any) -> TQuery:
        return self._derive(self._statement.order_by(*clauses))

    def limit(self: TQuery, limit: int | None) -> TQuery:
        return self._derive(self._statement.limit(limit))

    def offset(self: TQuery, offset: int | None) -> TQuery:
        return self._derive(self._statement.offset(offset))

    def options(self: TQuery, *options: Any) -> TQuery:
        return self._derive(self._statement.options(*options))

    def _count_statement(self) -> Select:
        inner = self._statement.order_by(None).subquery()
        return select(func.count()).select_from(inner)

    def _exists_statement(self) -> Select:
        return select(self._statement.exists())

    def _bind_arguments(self) -> dict[str, Any]:
        return {"mapper": self._entity_type}

    def __repr__(self) -> str:
        mode = "tracked" if self._tracked else "untracked"
        return f"<{type(self).__name__} {self._entity_type.__name__} ({mode})>"


class EntityQuery(_QueryBase[TEntity]):
    """Query bound to a blocking Session."""

    _session: Session

    def _fetch(self, statement: Select, fetch: Callable[[ScalarResult[Any]], TResult]) -> TResult:
        if self._tracked:
            return fetch(self._session.scalars(statement))
        if self._session.autoflush:
            self._session.flush()
        connection = self._session.connection(bind_arguments=self._bind_arguments())
        with Session(bind=connection, join_transaction_mode="rollback_only") as snapshot:
            return fetch(snapshot.scalars(statement))

    def all(self) -> list[TEntity]:
        return self._fetch(self._statement, lambda result: list(result.all()))

    def first(self) -> TEntity | None:
        return self._fetch(self._statement.limit(1), lambda result: result.first())

    def one_or_none(self) -> TEntity | None:
        return self._fetch(self._statement, lambda result: result.one_or_none())

    def count(self) -> int:
        return self._session.scalar(self._count_statement()) or 0

    def exists(self) -> bool:
        return bool(self._session.scalar(self._exists_statement()))

    def __iter__(self) -> Iterator[TEntity]:
        return iter(self.all())


class AsyncEntityQuery(_QueryBase[TEntity]):
    """Query bound to an AsyncSession; terminal methods are coroutines."""

    _session: AsyncSession

    async def _fetch(
        self, statement: Select, fetch: Callable[[ScalarResult[Any]], TResult]
    ) -> TResult:
        if self._tracked:
            return fetch(await self._session.scalars(statement))
        if self._session.autoflush:
            await self._session.flush()
        connection = await self._session.connection(bind_arguments=self._bind_arguments())
        async with AsyncSession(bind=connection, join_transaction_mode="rollback_only") as snapshot:
            return fetch(await snapshot.scalars(statement))

    async def all(self) -> list[TEntity]:
        return await self._fetch(self._statement, lambda result: list(result.all()))

    async def first(self) -> TEntity | None:
        return await self._fetch(self._statement.limit(1), lambda result: result.first())

    async def one_or_none(self) -> TEntity | None:
        return await self._fetch(self._statement, lambda result: result.one_or_none())

    async def count(self) -> int:
        return await self._session.scalar(self._count_statement()) or 0

    async def exists(self) -> bool:
        return bool(await self._session.scalar(self._exists_statement()))
