"""Validation result: the cleaned fields or the per-field errors."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """The outcome of checking input against a schema.

    Falsy when invalid::

        result = validate(ctx.input, schema)
        if not result:
            ...

    ``data`` holds the declared fields that were present. ``errors`` maps
    field names to messages::

        {"username": ["This field is required"]}
    """

    data: dict[str, Any]
    errors: dict[str, list[str]]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.is_valid
