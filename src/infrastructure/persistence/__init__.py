"""Persistence package.

Exports the SQLAlchemy unit-of-work, database-context and repository
implementations, and the get_repository() factory for wiring at the
application boundary (FastAPI dependency injection or plain scripts).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import SQLAlchemyError as PersistenceError

from src.domain.unit_of_work import AsyncUnitOfWork

from .context import AsyncDbContext, AsyncEntitySet, DbContext, EntitySet
from .query import AsyncEntityQuery, EntityQuery
from .repository import AsyncSqlRepository, SqlRepository
from .unit_of_work import AsyncSqlUnitOfWork, SqlUnitOfWork


def get_repository(
    unit_of_work: Any,
    entity_type: type,
    key_type: type | None = None,
) -> SqlRepository[Any, Any] | AsyncSqlRepository[Any, Any]:
    """Construct the repository matching the kind of ``unit_of_work``.

    Intended for use inside a request or job scope:

        async with AsyncSqlUnitOfWork() as uow:
            users = get_repository(uow, User)
            user = await users.get(user_id)
    """
    if isinstance(unit_of_work, AsyncUnitOfWork):
        return AsyncSqlRepository(unit_of_work, entity_type, key_type)
    return SqlRepository(unit_of_work, entity_type, key_type)


__all__ = [
    "AsyncDbContext",
    "AsyncEntityQuery",
    "AsyncEntitySet",
    "AsyncSqlRepository",
    "AsyncSqlUnitOfWork",
    "DbContext",
    "EntityQuery",
    "EntitySet",
    "PersistenceError",
    "SqlRepository",
    "SqlUnitOfWork",
    "get_repository",
]
