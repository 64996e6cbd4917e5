"""Built-in validation rules.

A rule is any callable ``(value) -> str | None`` returning an error
message, or ``None`` when the value passes. Parameterized rules are
factories::

    def max_length(n: int) -> Validator:
        def check(value: Any) -> str | None:
            ...
        return check

Input comes from JSON bodies as well as query strings and forms, so
rules accept any value and reject the wrong type themselves.
"""

import re
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeAlias

Validator: TypeAlias = Callable[[Any], str | None]


def is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ---------------------------------------------------------------------------
# Presence and type
# ---------------------------------------------------------------------------


def required(value: Any) -> str | None:
    """Field must be present and non-empty."""
    if is_missing(value):
        return "This field is required"
    return None


def string(value: Any) -> str | None:
    if not isinstance(value, str):
        return "Must be a string"
    return None


def boolean(value: Any) -> str | None:
    """Accepts JSON booleans and the form strings ``true``/``false``."""
    if isinstance(value, bool) or value in ("true", "false"):
        return None
    return "Must be true or false"


def integer(value: Any) -> str | None:
    if isinstance(value, bool):
        return "Must be a whole number"
    if isinstance(value, int):
        return None
    try:
        int(value)
    except (TypeError, ValueError):
        return "Must be a whole number"
    return None


# ---------------------------------------------------------------------------
# Length
# ---------------------------------------------------------------------------


def max_length(n: int) -> Validator:
    """String must be at most *n* characters."""

    def check(value: Any) -> str | None:
        if isinstance(value, str) and len(value) > n:
            return f"Must be at most {n} characters"
        return None

    return check


def min_length(n: int) -> Validator:
    """String must be at least *n* characters."""

    def check(value: Any) -> str | None:
        if isinstance(value, str) and len(value) < n:
            return f"Must be at least {n} characters"
        return None

    return check


# ---------------------------------------------------------------------------
# Format
# ---------------------------------------------------------------------------

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")


def email(value: Any) -> str | None:
    """Basic structural check, not deliverability."""
    if not isinstance(value, str) or not _EMAIL_RE.match(value):
        return "Must be a valid email address"
    return None


def matches(pattern: str, message: str | None = None) -> Validator:
    compiled = re.compile(pattern)

    def check(value: Any) -> str | None:
        if not isinstance(value, str) or not compiled.match(value):
            return message or f"Must match pattern: {pattern}"
        return None

    return check


def iso_datetime(value: Any) -> str | None:
    """ISO-8601 timestamp, e.g. ``2026-01-01T00:00:00Z``."""
    if not isinstance(value, str):
        return "Must be an ISO-8601 date-time"
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return "Must be an ISO-8601 date-time"
    return None


# ---------------------------------------------------------------------------
# Choice
# ---------------------------------------------------------------------------


def one_of(*choices: str) -> Validator:
    allowed = frozenset(choices)

    def check(value: Any) -> str | None:
        if value not in allowed:
            return f"Must be one of: {', '.join(sorted(allowed))}"
        return None

    return check
