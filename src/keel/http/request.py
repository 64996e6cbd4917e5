"""Immutable HTTP request.

Frozen metadata with async body access. The body is read from the ASGI
``receive`` callable once and cached.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field
from typing import Any

from keel._internal.asgi import Receive, Scope
from keel.http.cookies import parse_cookies
from keel.http.forms import FormData, parse_form_data
from keel.http.params import Headers, QueryParams


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Cookies are parsed once in ``from_asgi`` and stored as a frozen field.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    cookies: Mapping[str, str]
    scheme: str = "http"
    server: tuple[str, int] | None = None
    client: tuple[str, int] | None = None

    _receive: Receive | None = field(default=None, repr=False, compare=False)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def media_type(self) -> str:
        """Content-Type without parameters, lowercased."""
        return (self.content_type or "").split(";")[0].strip().lower()

    @property
    def host(self) -> str:
        host = self.headers.get("host")
        if host:
            return host
        if self.server is not None:
            name, port = self.server
            return f"{name}:{port}"
        return "localhost"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}"

    @property
    def url(self) -> str:
        """Absolute URL (scheme, host, path and query string)."""
        if self.query.raw:
            return f"{self.base_url}{self.path}?{self.query.raw}"
        return f"{self.base_url}{self.path}"

    async def body(self) -> bytes:
        if "body" not in self._cache:
            self._cache["body"] = b"".join([chunk async for chunk in self.stream()])
        return self._cache["body"]

    async def stream(self) -> AsyncGenerator[bytes]:
        if self._receive is None:
            return
        while True:
            message = await self._receive()
            chunk = message.get("body", b"")
            if chunk:
                yield chunk
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        """Parse the body as JSON. Raises ``ValueError`` on malformed input."""
        raw = await self.body()
        return json.loads(raw) if raw else None

    async def form(self) -> FormData:
        """Parse the body as URL-encoded or multipart form data."""
        if "form" not in self._cache:
            raw = await self.body()
            ct = self.content_type or "application/x-www-form-urlencoded"
            self._cache["form"] = parse_form_data(raw, ct)
        return self._cache["form"]

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive) -> Request:
        headers = Headers.from_raw(scope.get("headers", ()))
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            headers=headers,
            query=QueryParams(scope.get("query_string", b"")),
            cookies=parse_cookies(headers.get("cookie", "")),
            scheme=scope.get("scheme", "http"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            _receive=receive,
        )
