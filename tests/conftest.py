"""Shared fixtures: signing keys, request contexts, controllable clocks."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import pytest

from keel.config import AppConfig
from keel.context import RequestContext
from keel.http.request import Request

KEYS = {
    "jwt_key": "test-access-signing-key-0123456789abcdef",
    "refresh_token_key": "test-refresh-signing-key-0123456789abcdef",
    "cookie_key": "test-cookie-signing-key-0123456789abcdef",
}
GRANT_KEY = "bootstrap-secret-0123456789"


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(**KEYS, permission_grant_key=GRANT_KEY)


def make_request(
    method: str = "GET",
    path: str = "/",
    *,
    headers: Mapping[str, str] | None = None,
    cookies: Mapping[str, str] | None = None,
    query: Mapping[str, str] | None = None,
    body: bytes = b"",
    json_body: Any = None,
) -> Request:
    raw_headers = [(b"host", b"testserver")]
    if json_body is not None:
        body = json.dumps(json_body).encode("utf-8")
        raw_headers.append((b"content-type", b"application/json"))
    for name, value in (headers or {}).items():
        raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    if cookies:
        cookie_header = "; ".join(f"{k}={v}" for k, v in cookies.items())
        raw_headers.append((b"cookie", cookie_header.encode("latin-1")))

    sent = False

    async def receive() -> dict[str, Any]:
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": urlencode(query or {}).encode("latin-1"),
        "headers": raw_headers,
        "scheme": "http",
        "server": ("testserver", 80),
    }
    return Request.from_asgi(scope, receive)


def make_context(method: str = "GET", path: str = "/", **kwargs: Any) -> RequestContext:
    return RequestContext(make_request(method, path, **kwargs))


class FakeClock:
    """An adjustable aware-UTC clock."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(UTC).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def past_clock() -> FakeClock:
    """A clock far enough back that anything it signs has expired."""
    return FakeClock(datetime(2000, 1, 1, tzinfo=UTC))
