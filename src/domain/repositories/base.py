"""Generic repository base interfaces.

Repository[TEntity, TKey] is the root abstraction for data access over a
single entity type.  Concrete implementations live in
src/infrastructure/persistence/ and are bound to a unit of work at the
application boundary via dependency injection.

Design notes:
  - Two interfaces with identical contracts: Repository (blocking, bound to
    a Session) and AsyncRepository (coroutines, bound to an AsyncSession).
  - TEntity is a mapped entity type with a single primary-key column;
    TKey is that column's Python type (int, str, UUID or anything else).
  - Arguments are validated before any I/O and fail with ValidationError.
  - Persistence failures propagate unchanged from the ORM.
  - "Not found" is never an error: get() returns None and delete_by_key()
    returns 0.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

TEntity = TypeVar("TEntity")
TKey = TypeVar("TKey")

# A boolean SQL expression over the entity's columns, e.g. User.email == "x".
Predicate = Any
# A relationship attribute (User.orders) or attribute path ("orders.lines").
Include = Any


class Repository(ABC, Generic[TEntity, TKey]):
    """Abstract blocking CRUD + query interface for one entity type."""

    @abstractmethod
    def insert(self, *entities: TEntity) -> int:
        """Stage ``entities`` for addition, persist, and return rows written."""

    @abstractmethod
    def delete(self, *entities: TEntity) -> int:
        """Stage ``entities`` for removal, persist, and return rows written."""

    @abstractmethod
    def delete_by_key(self, key: TKey) -> int:
        """Delete the entity with primary key ``key``; 0 when it does not exist."""

    @abstractmethod
    def delete_where(self, predicate: Predicate) -> int:
        """Delete every entity matching ``predicate``."""

    @abstractmethod
    def update(self, entity: TEntity) -> int:
        """Mark ``entity`` as modified, persist, and return rows written."""

    @abstractmethod
    def check_exists(self, predicate: Predicate, id: TKey | None = None) -> bool:
        """Return whether a row matches ``predicate``.

        When ``id`` is set, the row with that identifier is excluded, so the
        result answers "does another record already satisfy this?".
        """

    @abstractmethod
    def get(self, key: TKey) -> TEntity | None:
        """Return the entity with primary key ``key``, or None if not found."""

    @abstractmethod
    def query(self, *includes: Include) -> Any:
        """Return a lazily evaluated, untracked query over the entity set."""

    @abstractmethod
    def track_query(self, *includes: Include) -> Any:
        """Return a lazily evaluated query whose rows are change-tracked."""


class AsyncRepository(ABC, Generic[TEntity, TKey]):
    """Abstract async counterpart of Repository with identical contracts."""

    @abstractmethod
    async def insert(self, *entities: TEntity) -> int:
        """Stage ``entities`` for addition, persist, and return rows written."""

    @abstractmethod
    async def delete(self, *entities: TEntity) -> int:
        """Stage ``entities`` for removal, persist, and return rows written."""

    @abstractmethod
    async def delete_by_key(self, key: TKey) -> int:
        """Delete the entity with primary key ``key``; 0 when it does not exist."""

    @abstractmethod
    async def delete_where(self, predicate: Predicate) -> int:
        """Delete every entity matching ``predicate``."""

    @abstractmethod
    async def update(self, entity: TEntity) -> int:
        """Mark ``entity`` as modified, persist, and return rows written."""

    @abstractmethod
    async def check_exists(self, predicate: Predicate, id: TKey | None = None) -> bool:
        """Async form of Repository.check_exists."""

    @abstractmethod
    async def get(self, key: TKey) -> TEntity | None:
        """Return the entity with primary key ``key``, or None if not found."""

    @abstractmethod
    def query(self, *includes: Include) -> Any:
        """Return a lazily evaluated, untracked query over the entity set."""

    @abstractmethod
    def track_query(self, *includes: Include) -> Any:
        """Return a lazily evaluated query whose rows are change-tracked."""
