"""Per-use-case schemas.

Each use case validates against the schema whose id is derived from its
path: ``/user/login`` uses ``UserLoginSchema``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any, TypeAlias

from keel.errors import SchemaNotFound, ValidationFailure
from keel.validation.result import ValidationResult
from keel.validation.rules import Validator, is_missing, required

logger = logging.getLogger("keel.validation")

Schema: TypeAlias = Mapping[str, list[Validator]]


def schema_id_for(use_case: str) -> str:
    """``/permission/secretGrant`` -> ``PermissionSecretGrantSchema``."""
    parts = [part for part in use_case.strip("/").split("/") if part]
    return "".join(part[:1].upper() + part[1:] for part in parts) + "Schema"


def validate(data: Mapping[str, Any], schema: Schema) -> ValidationResult:
    """Run each field's rules over *data*.

    A missing field only fails when its rules include ``required``; the
    other rules are skipped for it. Fields outside the schema pass through
    unchecked and are left out of ``data``.
    """
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}

    for field_name, validators in schema.items():
        value = data.get(field_name)
        if is_missing(value):
            if required in validators:
                errors[field_name] = ["This field is required"]
            continue

        field_errors = [
            message
            for validator in validators
            if validator is not required
            if (message := validator(value)) is not None
        ]
        if field_errors:
            errors[field_name] = field_errors
        else:
            cleaned[field_name] = value

    return ValidationResult(data=cleaned, errors=errors)


class SchemaValidator:
    """Registry of schemas keyed by schema id."""

    __slots__ = ("_lock", "_schemas")

    def __init__(self, schemas: Mapping[str, Schema] | None = None) -> None:
        self._lock = threading.Lock()
        self._schemas: dict[str, Schema] = dict(schemas or {})

    def register(self, schema_id: str, schema: Schema) -> None:
        with self._lock:
            if schema_id in self._schemas:
                logger.debug("Replacing schema %s", schema_id)
            self._schemas[schema_id] = schema

    def schema_for(self, use_case: str) -> Schema:
        """Raises ``SchemaNotFound`` when no schema matches *use_case*."""
        schema_id = schema_id_for(use_case)
        with self._lock:
            schema = self._schemas.get(schema_id)
        if schema is None:
            raise SchemaNotFound(use_case, schema_id)
        return schema

    def validate(self, data: Mapping[str, Any], use_case: str) -> dict[str, Any]:
        """Validate *data* for *use_case* and return the cleaned fields.

        Raises:
            SchemaNotFound: No schema is registered for the use case.
            ValidationFailure: The data does not satisfy the schema.
        """
        schema = self.schema_for(use_case)
        result = validate(data, schema)
        if not result:
            raise ValidationFailure(
                result.errors, use_case=use_case, schema_id=schema_id_for(use_case)
            )
        return result.data

    def __contains__(self, schema_id: object) -> bool:
        with self._lock:
            return schema_id in self._schemas
