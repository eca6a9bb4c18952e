"""Domain-level exceptions raised by repositories before any I/O happens."""

from __future__ import annotations


class ValidationError(ValueError):
    """An argument passed to a repository operation is missing or invalid.

    Raised eagerly, before the session is touched, so no partial side effects
    exist when it propagates.  ``argument`` names the offending parameter.
    """

    def __init__(self, message: str, argument: str | None = None) -> None:
        super().__init__(message)
        self.argument = argument


def check_not_none(value: object, argument: str) -> None:
    if value is None:
        raise ValidationError(f"{argument} must not be None", argument)
