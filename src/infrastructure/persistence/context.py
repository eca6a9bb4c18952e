"""Database contexts and entity sets over SQLAlchemy sessions.

A DbContext wraps one session and plays the role of the change-tracking
context: it hands out typed EntitySets and flushes staged changes through
save_changes().  It never commits; transaction boundaries belong to the unit
of work that created it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import event, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import InvalidRequestError, NoInspectionAvailable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapper, Session, make_transient_to_detached, selectinload
from sqlalchemy.orm.attributes import InstrumentedAttribute, flag_modified

from src.domain.exceptions import ValidationError, check_not_none

from .query import AsyncEntityQuery, EntityQuery

TEntity = TypeVar("TEntity")


# --- mapping helpers ---

def entity_mapper(entity_type: Any) -> Mapper:
    """Return the mapper of ``entity_type``; ValidationError if unmapped."""
    check_not_none(entity_type, "entity_type")
    try:
        mapper = sa_inspect(entity_type)
    except NoInspectionAvailable:
        mapper = None
    if not isinstance(mapper, Mapper):
        raise ValidationError(f"{entity_type!r} is not a mapped entity type", "entity_type")
    return mapper


def primary_key_attribute(entity_type: Any) -> InstrumentedAttribute:
    """Return the class attribute of the entity's single primary-key column."""
    mapper = entity_mapper(entity_type)
    if len(mapper.primary_key) != 1:
        raise ValidationError(
            f"{entity_type.__name__} must have exactly one primary-key column, "
            f"found {len(mapper.primary_key)}",
            "entity_type",
        )
    prop = mapper.get_property_by_column(mapper.primary_key[0])
    return getattr(entity_type, prop.key)


def primary_key_type(entity_type: Any) -> type | None:
    """Python type of the primary-key column, or None when not declared."""
    column = entity_mapper(entity_type).primary_key[0]
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def eager_load_options(entity_type: Any, includes: Sequence[Any]) -> list[Any]:
    """Build selectinload options for relationship attributes or dotted paths."""
    options = []
    for include in includes:
        check_not_none(include, "includes")
        if not isinstance(include, str):
            options.append(selectinload(include))
            continue
        owner = entity_type
        loader = None
        for name in include.split("."):
            relationship = entity_mapper(owner).relationships.get(name)
            if relationship is None:
                raise ValidationError(
                    f"{owner.__name__} has no relationship named {name!r}", "includes"
                )
            attribute = getattr(owner, name)
            loader = selectinload(attribute) if loader is None else loader.selectinload(attribute)
            owner = relationship.mapper.class_
        options.append(loader)
    return options


def pending_row_count(session: Session) -> int:
    """Number of entity rows the next flush will insert, update or delete."""
    modified = sum(1 for obj in session.dirty if session.is_modified(obj))
    return len(session.new) + modified + len(session.deleted)


def attach_modified(session: Session, entity: Any) -> Any:
    """Attach ``entity`` to ``session`` with every column marked modified.

    An entity without a key is added for insertion.  Any other entity is
    attached as persistent, so the flush issues an UPDATE and raises
    StaleDataError when its row no longer exists.  Returns the instance the
    session tracks, which differs from ``entity`` only when the session
    already holds an instance with the same identity.  An instance whose
    deletion was flushed in this session is rejected.
    """
    state = sa_inspect(entity)
    mapper = state.mapper
    if state.deleted:
        raise InvalidRequestError(
            f"{mapper.class_.__name__} instance has been deleted in this session"
        )
    if state.transient:
        if any(value is None for value in mapper.primary_key_from_instance(entity)):
            session.add(entity)
            return entity
        make_transient_to_detached(entity)
    if state.detached:
        if session.identity_map.get(state.key) is None:
            session.add(entity)
        else:
            entity = session.merge(entity)
            state = sa_inspect(entity)
    keys = {mapper.get_property_by_column(column).key for column in mapper.primary_key}
    for attribute in mapper.column_attrs:
        if attribute.key not in keys and attribute.key in state.dict:
            flag_modified(entity, attribute.key)
    return entity


class _FlushCounter:
    """Running total of rows written by the flushes of one session.

    Autoflush can write staged rows before save_changes() runs, so every
    flush is counted, not just the final one.
    """

    def __init__(self, session: Session) -> None:
        self._rows = 0
        event.listen(session, "after_flush", self._after_flush)
        event.listen(session, "after_rollback", self._after_rollback)

    def _after_flush(self, session: Session, flush_context: Any) -> None:
        # new/dirty/deleted still hold the pre-flush state here
        self._rows += pending_row_count(session)

    def _after_rollback(self, session: Session) -> None:
        self._rows = 0

    def take(self) -> int:
        rows, self._rows = self._rows, 0
        return rows


# --- blocking ---

class EntitySet(Generic[TEntity]):
    """Tracked collection of one entity type within a Session."""

    def __init__(self, session: Session, entity_type: type[TEntity]) -> None:
        self._session = session
        self._entity_type = entity_type

    @property
    def entity_type(self) -> type[TEntity]:
        return self._entity_type

    def add_range(self, entities: Iterable[TEntity]) -> None:
        self._session.add_all(list(entities))

    def remove_range(self, entities: Iterable[TEntity]) -> None:
        with self._session.no_autoflush:
            for entity in entities:
                self._session.delete(entity)

    def update(self, entity: TEntity) -> TEntity:
        """Attach ``entity`` and mark all of its columns modified."""
        with self._session.no_autoflush:
            return attach_modified(self._session, entity)

    def find(self, key: Any) -> TEntity | None:
        return self._session.get(self._entity_type, key)

    def query(self, *includes: Any, tracked: bool = True) -> EntityQuery[TEntity]:
        statement = select(self._entity_type)
        if includes:
            statement = statement.options(*eager_load_options(self._entity_type, includes))
        return EntityQuery(self._session, self._entity_type, statement, tracked)


class DbContext:
    """Change-tracking context over a blocking Session."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._sets: dict[type, EntitySet[Any]] = {}
        self._flushes = _FlushCounter(session)

    @property
    def session(self) -> Session:
        return self._session

    def set(self, entity_type: type[TEntity]) -> EntitySet[TEntity]:
        entity_mapper(entity_type)
        if entity_type not in self._sets:
            self._sets[entity_type] = EntitySet(self._session, entity_type)
        return self._sets[entity_type]

    def save_changes(self) -> int:
        """Flush staged changes and return the rows written since the last save."""
        self._session.flush()
        return self._flushes.take()


# --- async ---

def _remove_all(session: Session, entities: list[Any]) -> None:
    with session.no_autoflush:
        for entity in entities:
            session.delete(entity)


def _attach_modified_without_autoflush(session: Session, entity: Any) -> Any:
    with session.no_autoflush:
        return attach_modified(session, entity)


class AsyncEntitySet(Generic[TEntity]):
    """Tracked collection of one entity type within an AsyncSession."""

    def __init__(self, session: AsyncSession, entity_type: type[TEntity]) -> None:
        self._session = session
        self._entity_type = entity_type

    @property
    def entity_type(self) -> type[TEntity]:
        return self._entity_type

    async def add_range(self, entities: Iterable[TEntity]) -> None:
        self._session.add_all(list(entities))

    async def remove_range(self, entities: Iterable[TEntity]) -> None:
        await self._session.run_sync(_remove_all, list(entities))

    async def update(self, entity: TEntity) -> TEntity:
        return await self._session.run_sync(_attach_modified_without_autoflush, entity)

    async def find(self, key: Any) -> TEntity | None:
        return await self._session.get(self._entity_type, key)

    def query(self, *includes: Any, tracked: bool = True) -> AsyncEntityQuery[TEntity]:
        statement = select(self._entity_type)
        if includes:
            statement = statement.options(*eager_load_options(self._entity_type, includes))
        return AsyncEntityQuery(self._session, self._entity_type, statement, tracked)


class AsyncDbContext:
    """Change-tracking context over an AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._sets: dict[type, AsyncEntitySet[Any]] = {}
        self._flushes = _FlushCounter(session.sync_session)

    @property
    def session(self) -> AsyncSession:
        return self._session

    def set(self, entity_type: type[TEntity]) -> AsyncEntitySet[TEntity]:
        entity_mapper(entity_type)
        if entity_type not in self._sets:
            self._sets[entity_type] = AsyncEntitySet(self._session, entity_type)
        return self._sets[entity_type]

    async def save_changes(self) -> int:
        await self._session.flush()
        return self._flushes.take()
