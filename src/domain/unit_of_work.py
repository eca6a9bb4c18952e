"""Unit-of-work interfaces.

A unit of work owns the lifetime of one database session and the transaction
around it.  Repositories ask it for the database context serving their
entity/key type pair and never create, commit or dispose that context
themselves.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class UnitOfWork(ABC):
    """Blocking unit of work."""

    @abstractmethod
    def get_db_context(self, entity_type: type, key_type: type | None = None) -> Any:
        """Return the database context that stores ``entity_type``."""

    @abstractmethod
    def commit(self) -> None:
        """Commit the current transaction."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard the current transaction."""


class AsyncUnitOfWork(ABC):
    """Async unit of work."""

    @abstractmethod
    def get_db_context(self, entity_type: type, key_type: type | None = None) -> Any:
        """Return the database context that stores ``entity_type``."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard the current transaction."""
