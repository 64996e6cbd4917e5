"""Per-request context.

One ``RequestContext`` is created for every HTTP request and handed to
each middleware step and to the use-case handler. It carries:

- ``request``: the immutable ``Request``
- ``input``: query, then body, then uploaded files merged into one dict
- ``uri``: absolute URL pieces plus the ``use_case`` (the request path)
- ``mapping``: the resolved ``Route``, assigned exactly once
- ``session``: the verified access-token session (unset on public routes)
- ``authorization_result``: the decision written by the authorization step
- ``app_state_info``: the application-state snapshot written by the gate

Use cases also write response side effects here (``set_header``,
``set_cookie``, ``clear_cookie``). They are applied to whatever
``Response`` the pipeline finally produces, including error responses.

The active context is exposed through a ``ContextVar``::

    from keel.context import get_context

    ctx = get_context()
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from keel.errors import ValidationFailure
from keel.http.cookies import SetCookie
from keel.http.forms import is_form_content_type

if TYPE_CHECKING:
    from keel.auth.session import Session
    from keel.authz.result import AuthorizationDecision
    from keel.http.request import Request
    from keel.http.response import Response
    from keel.routing.route import Route


@dataclass(frozen=True, slots=True)
class Uri:
    """URL pieces of the current request."""

    base_uri: str
    use_case: str
    query: str = ""

    @property
    def href(self) -> str:
        if self.query:
            return f"{self.base_uri}{self.use_case}?{self.query}"
        return f"{self.base_uri}{self.use_case}"

    def __str__(self) -> str:
        return self.href


class RequestContext:
    """Mutable per-request state shared by middleware and the handler."""

    __slots__ = (
        "_authorization_result",
        "_loaded",
        "_mapping",
        "_response_cookies",
        "_response_headers",
        "_session",
        "app_state_info",
        "input",
        "request",
        "uri",
    )

    def __init__(self, request: Request) -> None:
        self.request = request
        self.uri = Uri(
            base_uri=request.base_url,
            use_case=request.path,
            query=request.query.raw,
        )
        self.input: dict[str, Any] = {}
        self.app_state_info: dict[str, Any] | None = None
        self._mapping: Route | None = None
        self._session: Session | None = None
        self._authorization_result: AuthorizationDecision | None = None
        self._response_headers: list[tuple[str, str]] = []
        self._response_cookies: list[SetCookie] = []
        self._loaded = False

    @classmethod
    async def build(cls, request: Request) -> RequestContext:
        """Create the context for *request* with its input already merged."""
        ctx = cls(request)
        await ctx.load_input()
        return ctx

    # -- Input --

    async def load_input(self) -> dict[str, Any]:
        """Merge query parameters, the parsed body, and uploaded files.

        Body fields override query fields of the same name; files are
        layered last. Runs once; later calls return the same dict.

        Raises:
            ValidationFailure: If a JSON body is malformed or not an object,
                or a form body cannot be parsed.
        """
        if self._loaded:
            return self.input
        merged: dict[str, Any] = dict(self.request.query.to_dict())
        files: dict[str, Any] = {}

        media_type = self.request.media_type
        if media_type == "application/json" or media_type.endswith("+json"):
            try:
                body = await self.request.json()
            except ValueError as exc:
                raise ValidationFailure(
                    {"body": [f"Malformed JSON: {exc}"]}, use_case=self.uri.use_case
                ) from exc
            if body is not None and not isinstance(body, dict):
                raise ValidationFailure(
                    {"body": ["JSON body must be an object"]}, use_case=self.uri.use_case
                )
            merged.update(body or {})
        elif media_type and is_form_content_type(media_type):
            try:
                form = await self.request.form()
            except ValueError as exc:
                raise ValidationFailure(
                    {"body": [str(exc)]}, use_case=self.uri.use_case
                ) from exc
            merged.update(form.to_dict())
            files = dict(form.files)

        merged.update(files)
        self.input = merged
        self._loaded = True
        return merged

    # -- Set-once slots --

    @property
    def mapping(self) -> Route | None:
        return self._mapping

    @mapping.setter
    def mapping(self, route: Route) -> None:
        if self._mapping is not None:
            msg = "Request mapping is already resolved and cannot be reassigned."
            raise RuntimeError(msg)
        self._mapping = route

    @property
    def session(self) -> Session | None:
        return self._session

    @session.setter
    def session(self, session: Session) -> None:
        self._session = session

    @property
    def authorization_result(self) -> AuthorizationDecision | None:
        return self._authorization_result

    @authorization_result.setter
    def authorization_result(self, decision: AuthorizationDecision) -> None:
        self._authorization_result = decision

    # -- Response side effects --

    def set_header(self, name: str, value: str) -> None:
        self._response_headers.append((name, value))

    def set_cookie(self, cookie: SetCookie) -> None:
        self._response_cookies.append(cookie)

    def clear_cookie(self, name: str, *, path: str = "/") -> None:
        self._response_cookies.append(SetCookie.deletion(name, path=path))

    def apply(self, response: Response) -> Response:
        """Attach collected headers and cookies to *response*."""
        for name, value in self._response_headers:
            response = response.with_header(name, value)
        for cookie in self._response_cookies:
            response = response.with_cookie(cookie)
        return response

    def __repr__(self) -> str:
        return f"<RequestContext {self.request.method} {self.uri.use_case}>"


context_var: ContextVar[RequestContext] = ContextVar("keel_request_context")
"""The active request context. Set by the app before the pipeline runs."""


def get_context() -> RequestContext:
    """Return the active request context.

    Raises ``LookupError`` if called outside a request.
    """
    return context_var.get()
