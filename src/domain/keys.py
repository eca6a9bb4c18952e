"""Primary-key validation strategies.

A repository picks one KeyValidator when it is constructed, based on the
Python type of the entity's primary key.  Each validator answers two
questions for its key kind:

  - validate(key): is this a usable lookup key?  Invalid keys raise
    ValidationError.
  - is_unset(key): is this the kind's default/"no value" key?  Used by
    check_exists to decide whether self-exclusion applies.

Supported kinds:
  int   valid when > 0; unset when None or 0
  str   valid when non-empty; unset when None or ""
  UUID  valid when not the nil UUID; unset when None or nil
  other valid when not None; unset when None
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar
from uuid import UUID

from .exceptions import ValidationError, check_not_none

TKey = TypeVar("TKey")

NIL_UUID = UUID(int=0)


class KeyValidator(ABC, Generic[TKey]):
    """Validation rules for one primary-key kind."""

    key_type: type = object

    def validate(self, key: Any, argument: str = "key") -> None:
        """Raise ValidationError unless ``key`` can be used for a lookup."""
        check_not_none(key, argument)
        self._check(key, argument)

    @abstractmethod
    def is_unset(self, key: Any) -> bool:
        """Return True when ``key`` is this kind's default value."""

    def store_generated(self, key: Any) -> bool:
        """Return True when an insert should let the store assign the key.

        Only placeholder values of kinds the store can generate (0, the nil
        UUID) qualify; None already means "generate".
        """
        return False

    def _check(self, key: Any, argument: str) -> None:
        pass

    def _check_type(self, key: Any, argument: str) -> None:
        if not isinstance(key, self.key_type):
            raise ValidationError(
                f"{argument} must be of type {self.key_type.__name__}, "
                f"got {type(key).__name__}",
                argument,
            )


class IntKeyValidator(KeyValidator[int]):
    key_type = int

    def is_unset(self, key: Any) -> bool:
        return key is None or key == 0

    def store_generated(self, key: Any) -> bool:
        return key == 0 and not isinstance(key, bool)

    def _check(self, key: Any, argument: str) -> None:
        # bool is an int subclass but never a meaningful identifier
        if isinstance(key, bool):
            raise ValidationError(f"{argument} must be of type int, got bool", argument)
        self._check_type(key, argument)
        if key <= 0:
            raise ValidationError(f"{argument} must be greater than 0, got {key}", argument)


class StrKeyValidator(KeyValidator[str]):
    key_type = str

    def is_unset(self, key: Any) -> bool:
        return key is None or key == ""

    def _check(self, key: Any, argument: str) -> None:
        self._check_type(key, argument)
        if not key:
            raise ValidationError(f"{argument} must not be empty", argument)


class UuidKeyValidator(KeyValidator[UUID]):
    key_type = UUID

    def is_unset(self, key: Any) -> bool:
        return key is None or key == NIL_UUID

    def store_generated(self, key: Any) -> bool:
        return key == NIL_UUID

    def _check(self, key: Any, argument: str) -> None:
        self._check_type(key, argument)
        if key == NIL_UUID:
            raise ValidationError(f"{argument} must not be the nil UUID", argument)


class GenericKeyValidator(KeyValidator[Any]):
    """Fallback for key types with no empty value beyond None."""

    def is_unset(self, key: Any) -> bool:
        return key is None


_VALIDATORS: dict[type, KeyValidator[Any]] = {
    int: IntKeyValidator(),
    str: StrKeyValidator(),
    UUID: UuidKeyValidator(),
}

_GENERIC = GenericKeyValidator()


def key_validator_for(key_type: type | None) -> KeyValidator[Any]:
    """Return the validator for ``key_type``.

    Subclasses resolve to their base kind (e.g. an IntEnum key is validated
    as an int).  Unknown or missing types get the generic validator.
    """
    if key_type is None or key_type is bool:
        return _GENERIC
    for kind, validator in _VALIDATORS.items():
        if issubclass(key_type, kind):
            return validator
    return _GENERIC
