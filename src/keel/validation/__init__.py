"""Rule-based input validation.

Usage::

    from keel.validation import SchemaValidator, min_length, required, string

    validator = SchemaValidator({
        "UserLoginSchema": {
            "username": [required, string],
            "password": [required, string, min_length(8)],
        },
    })
    data = validator.validate(ctx.input, "/user/login")
"""

from keel.validation.result import ValidationResult
from keel.validation.rules import (
    Validator,
    boolean,
    email,
    integer,
    iso_datetime,
    matches,
    max_length,
    min_length,
    one_of,
    required,
    string,
)
from keel.validation.schemas import Schema, SchemaValidator, schema_id_for, validate

__all__ = [
    "Schema",
    "SchemaValidator",
    "ValidationResult",
    "Validator",
    "boolean",
    "email",
    "integer",
    "iso_datetime",
    "matches",
    "max_length",
    "min_length",
    "one_of",
    "required",
    "schema_id_for",
    "string",
    "validate",
]
