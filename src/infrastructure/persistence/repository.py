"""SQLAlchemy implementation of the generic Repository interfaces.

SqlRepository and AsyncSqlRepository share construction, key validation and
query building; they differ only in whether persistence calls block or are
awaited.  Every mutating operation stages changes on the entity set and then
calls save_changes() on the unit of work's database context, which flushes
(but does not commit) and returns the number of rows written.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, select

from src.domain.exceptions import check_not_none
from src.domain.keys import KeyValidator, key_validator_for
from src.domain.repositories.base import AsyncRepository, Include, Predicate, Repository
from src.domain.unit_of_work import AsyncUnitOfWork, UnitOfWork

from .context import (
    AsyncDbContext,
    AsyncEntitySet,
    DbContext,
    EntitySet,
    primary_key_attribute,
    primary_key_type,
)
from .query import AsyncEntityQuery, EntityQuery

logger = logging.getLogger(__name__)

TEntity = TypeVar("TEntity")
TKey = TypeVar("TKey")


class _SqlRepositoryBase(Generic[TEntity, TKey]):
    def __init__(
        self,
        unit_of_work: Any,
        entity_type: type[TEntity],
        key_type: type | None = None,
    ) -> None:
        check_not_none(unit_of_work, "unit_of_work")
        self._id = primary_key_attribute(entity_type)
        if key_type is None:
            key_type = primary_key_type(entity_type)
        self._entity_type = entity_type
        self._keys: KeyValidator[Any] = key_validator_for(key_type)
        self._unit_of_work = unit_of_work
        self._db_context = unit_of_work.get_db_context(entity_type, key_type)
        self._set = self._db_context.set(entity_type)

    @property
    def unit_of_work(self) -> Any:
        return self._unit_of_work

    @property
    def entity_type(self) -> type[TEntity]:
        return self._entity_type

    @property
    def key_validator(self) -> KeyValidator[Any]:
        return self._keys

    def _check_entities(self, entities: tuple[TEntity, ...]) -> None:
        for entity in entities:
            check_not_none(entity, "entities")

    def _release_placeholder_keys(self, entities: tuple[TEntity, ...]) -> None:
        # 0 / nil UUID on a new entity means "let the store assign the key"
        name = self._id.key
        for entity in entities:
            if self._keys.store_generated(getattr(entity, name, None)):
                setattr(entity, name, None)

    def _exists_statement(self, predicate: Predicate, id: Any) -> Select:
        check_not_none(predicate, "predicate")
        statement = select(self._id).where(predicate)
        if not self._keys.is_unset(id):
            statement = statement.where(self._id != id)
        return statement.limit(1)

    def _log_saved(self, operation: str, count: int) -> None:
        logger.debug("%s %s: %d row(s) affected", operation, self._entity_type.__name__, count)

    def query(self, *includes: Include) -> Any:
        """Untracked query; returned entities are detached snapshots."""
        return self._set.query(*includes, tracked=False)

    def track_query(self, *includes: Include) -> Any:
        """Tracked query; changes to returned entities are flushed on save."""
        return self._set.query(*includes, tracked=True)


class SqlRepository(_SqlRepositoryBase[TEntity, TKey], Repository[TEntity, TKey]):
    """Blocking repository bound to a SqlUnitOfWork (or any UnitOfWork
    whose database context is a DbContext)."""

    _db_context: DbContext
    _set: EntitySet[TEntity]

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        entity_type: type[TEntity],
        key_type: type | None = None,
    ) -> None:
        super().__init__(unit_of_work, entity_type, key_type)

    @property
    def db_context(self) -> DbContext:
        return self._db_context

    def _save(self, operation: str) -> int:
        count = self._db_context.save_changes()
        self._log_saved(operation, count)
        return count

    def insert(self, *entities: TEntity) -> int:
        self._check_entities(entities)
        self._release_placeholder_keys(entities)
        self._set.add_range(entities)
        return self._save("insert")

    def delete(self, *entities: TEntity) -> int:
        self._check_entities(entities)
        self._set.remove_range(entities)
        return self._save("delete")

    def delete_by_key(self, key: TKey) -> int:
        self._keys.validate(key, "key")
        entity = self._set.find(key)
        if entity is None:
            logger.debug("delete_by_key %s: no row with key %r", self._entity_type.__name__, key)
            return 0
        return self.delete(entity)

    def delete_where(self, predicate: Predicate) -> int:
        check_not_none(predicate, "predicate")
        entities = self._set.query(tracked=True).where(predicate).all()
        return self.delete(*entities)

    def update(self, entity: TEntity) -> int:
        check_not_none(entity, "entity")
        self._set.update(entity)
        return self._save("update")

    def check_exists(self, predicate: Predicate, id: TKey | None = None) -> bool:
        statement = self._exists_statement(predicate, id)
        return self._db_context.session.execute(statement).first() is not None

    def get(self, key: TKey) -> TEntity | None:
        self._keys.validate(key, "key")
        return self._set.find(key)

    def query(self, *includes: Include) -> EntityQuery[TEntity]:
        return super().query(*includes)

    def track_query(self, *includes: Include) -> EntityQuery[TEntity]:
        return super().track_query(*includes)


class AsyncSqlRepository(_SqlRepositoryBase[TEntity, TKey], AsyncRepository[TEntity, TKey]):
    """Async repository bound to an AsyncSqlUnitOfWork."""

    _db_context: AsyncDbContext
    _set: AsyncEntitySet[TEntity]

    def __init__(
        self,
        unit_of_work: AsyncUnitOfWork,
        entity_type: type[TEntity],
        key_type: type | None = None,
    ) -> None:
        super().__init__(unit_of_work, entity_type, key_type)

    @property
    def db_context(self) -> AsyncDbContext:
        return self._db_context

    async def _save(self, operation: str) -> int:
        count = await self._db_context.save_changes()
        self._log_saved(operation, count)
        return count

    async def insert(self, *entities: TEntity) -> int:
        self._check_entities(entities)
        self._release_placeholder_keys(entities)
        await self._set.add_range(entities)
        return await self._save("insert")

    async def delete(self, *entities: TEntity) -> int:
        self._check_entities(entities)
        await self._set.remove_range(entities)
        return await self._save("delete")

    async def delete_by_key(self, key: TKey) -> int:
        self._keys.validate(key, "key")
        entity = await self._set.find(key)
        if entity is None:
            logger.debug("delete_by_key %s: no row with key %r", self._entity_type.__name__, key)
            return 0
        return await self.delete(entity)

    async def delete_where(self, predicate: Predicate) -> int:
        check_not_none(predicate, "predicate")
        entities = await self._set.query(tracked=True).where(predicate).all()
        return await self.delete(*entities)

    async def update(self, entity: TEntity) -> int:
        check_not_none(entity, "entity")
        await self._set.update(entity)
        return await self._save("update")

    async def check_exists(self, predicate: Predicate, id: TKey | None = None) -> bool:
        statement = self._exists_statement(predicate, id)
        result = await self._db_context.session.execute(statement)
        return result.first() is not None

    async def get(self, key: TKey) -> TEntity | None:
        self._keys.validate(key, "key")
        return await self._set.find(key)

    def query(self, *includes: Include) -> AsyncEntityQuery[TEntity]:
        return super().query(*includes)

    def track_query(self, *includes: Include) -> AsyncEntityQuery[TEntity]:
        return super().track_query(*includes)
