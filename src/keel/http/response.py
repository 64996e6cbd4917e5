"""HTTP response with chainable ``.with_*()`` transformations.

Each transformation returns a new Response. Use-case results are JSON,
so ``json_response`` is the usual way to build one.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

from keel.http.cookies import SetCookie

JSON_CONTENT_TYPE = "application/json"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, set | frozenset | tuple):
        return list(value)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def dumps(payload: Any) -> str:
    """Serialize a use-case result. Datetimes become ISO-8601 strings."""
    return json.dumps(payload, default=_json_default, ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations."""

    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/plain; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()
    cookies: tuple[SetCookie, ...] = ()

    def with_status(self, status: int) -> Response:
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str]) -> Response:
        return replace(self, headers=(*self.headers, *headers.items()))

    def with_cookie(self, cookie: SetCookie) -> Response:
        return replace(self, cookies=(*self.cookies, cookie))

    def header(self, name: str) -> str | None:
        """First value of a response header, case-insensitive."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def cookie(self, name: str) -> SetCookie | None:
        """The last ``Set-Cookie`` directive for *name*."""
        for cookie in reversed(self.cookies):
            if cookie.name == name:
                return cookie
        return None

    @property
    def body_bytes(self) -> bytes:
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    def json(self) -> Any:
        """Decode a JSON body."""
        return json.loads(self.body_bytes)


def json_response(payload: Any, status: int = 200) -> Response:
    return Response(body=dumps(payload), status=status, content_type=JSON_CONTENT_TYPE)


def empty_response(status: int = 204) -> Response:
    return Response(body=b"", status=status)
