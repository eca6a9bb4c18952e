"""SQLAlchemy unit-of-work implementations.

A unit of work opens one session, owns its transaction, and supplies the
database context repositories work against:

    with SqlUnitOfWork() as uow:
        users = SqlRepository(uow, User)
        users.insert(User(email="a@example.com"))
    # committed here; rolled back if the block raised

A unit of work can also borrow an existing session (from_session).  It then
leaves committing and closing to the session's owner.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from src.domain.unit_of_work import AsyncUnitOfWork, UnitOfWork
from src.infrastructure.database import get_async_session_factory, get_session_factory

from .context import AsyncDbContext, DbContext, entity_mapper

logger = logging.getLogger(__name__)


class SqlUnitOfWork(UnitOfWork):
    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory
        self._session: Session | None = None
        self._owns_session = True
        self._context: DbContext | None = None

    @classmethod
    def from_session(cls, session: Session) -> SqlUnitOfWork:
        uow = cls()
        uow._session = session
        uow._owns_session = False
        return uow

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("Unit of work is not active; use it as a context manager")
        return self._session

    def __enter__(self) -> SqlUnitOfWork:
        if self._session is None:
            factory = self._session_factory or get_session_factory()
            self._session = factory()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self._owns_session:
            return
        try:
            if exc_type is None:
                self.commit()
            else:
                logger.warning("Rolling back unit of work after %s", exc_type.__name__)
                self.rollback()
        finally:
            self.session.close()
            self._session = None
            self._context = None

    def get_db_context(self, entity_type: type, key_type: type | None = None) -> DbContext:
        entity_mapper(entity_type)
        if self._context is None:
            self._context = DbContext(self.session)
        return self._context

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class AsyncSqlUnitOfWork(AsyncUnitOfWork):
    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._owns_session = True
        self._context: AsyncDbContext | None = None

    @classmethod
    def from_session(cls, session: AsyncSession) -> AsyncSqlUnitOfWork:
        uow = cls()
        uow._session = session
        uow._owns_session = False
        return uow

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("Unit of work is not active; use it as a context manager")
        return self._session

    async def __aenter__(self) -> AsyncSqlUnitOfWork:
        if self._session is None:
            factory = self._session_factory or get_async_session_factory()
            self._session = factory()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self._owns_session:
            return
        try:
            if exc_type is None:
                await self.commit()
            else:
                logger.warning("Rolling back unit of work after %s", exc_type.__name__)
                await self.rollback()
        finally:
            await self.session.close()
            self._session = None
            self._context = None

    def get_db_context(self, entity_type: type, key_type: type | None = None) -> AsyncDbContext:
        entity_mapper(entity_type)
        if self._context is None:
            self._context = AsyncDbContext(self.session)
        return self._context

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
