"""Built-in pipeline steps.

Each step is a callable object. The orders used by ``default_middleware``
leave room for application steps in between:

==========================  ========
step                        order
==========================  ========
``ContextMiddleware``       ``-inf``
``AuthenticationMiddleware`` ``-400``
``AuthorizationMiddleware``  ``-300``
``AppStateMiddleware``       ``-200``
``ErrorRenderer``            ``100``
==========================  ========
"""

from __future__ import annotations

import logging
import math
import traceback
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from keel.errors import (
    AuthenticationFailure,
    AuthorizationFailure,
    HandlerNotFound,
    InvalidHandlerMethod,
    UseCaseError,
)
from keel.http.response import json_response
from keel.middleware.protocol import Descriptor, ErrorMiddleware, PreMiddleware
from keel.security.audit import emit_security_event

if TYPE_CHECKING:
    from keel.appstate.gate import AppStateGate
    from keel.auth.tokens import TokenService
    from keel.authz.engine import AuthorizationEngine
    from keel.config import AppConfig
    from keel.context import RequestContext
    from keel.http.response import Response
    from keel.routing.registry import RouteRegistry
    from keel.routing.route import Route

logger = logging.getLogger("keel.pipeline")

CONTEXT_ORDER = -math.inf
AUTHENTICATION_ORDER = -400
AUTHORIZATION_ORDER = -300
APP_STATE_ORDER = -200
ERROR_RENDERER_ORDER = 100


def _route(ctx: RequestContext) -> Route:
    route = ctx.mapping
    if route is None:
        raise HandlerNotFound(ctx.uri.use_case)
    return route


class ContextMiddleware:
    """Load request input and resolve the route for the use case."""

    __slots__ = ("_registry",)

    def __init__(self, registry: RouteRegistry) -> None:
        self._registry = registry

    async def __call__(self, ctx: RequestContext) -> None:
        await ctx.load_input()
        use_case = ctx.uri.use_case
        route = self._registry.lookup(use_case)
        if route is None:
            raise HandlerNotFound(use_case)
        method = ctx.request.method.lower()
        if method != route.method:
            raise InvalidHandlerMethod(use_case, method, route.method)
        ctx.mapping = route


class AuthenticationMiddleware:
    """Verify the ``Authorization: Bearer`` access token.

    Public routes are skipped and never get a session.
    """

    __slots__ = ("_tokens",)

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens

    async def __call__(self, ctx: RequestContext) -> None:
        if _route(ctx).is_public:
            return
        header = ctx.request.headers.get("authorization")
        if not header:
            raise AuthenticationFailure("missingHeader", "Authorization header is missing.")
        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            raise AuthenticationFailure(
                "invalidScheme", "Authorization header must use the Bearer scheme."
            )
        session = self._tokens.verify_access_token(token)
        if session.is_identity_only:
            raise AuthenticationFailure("invalidToken", "Reset tokens cannot open a session.")
        ctx.session = session


class AuthorizationMiddleware:
    """Check the session principal's roles against the route's roles."""

    __slots__ = ("_engine",)

    def __init__(self, engine: AuthorizationEngine) -> None:
        self._engine = engine

    async def __call__(self, ctx: RequestContext) -> None:
        route = _route(ctx)
        if route.is_public:
            return
        session = ctx.session
        if session is None:
            raise AuthenticationFailure("missingHeader", "Authorization header is missing.")

        decision = await self._engine.authorize(route.path, session.principal_id)
        ctx.authorization_result = decision
        if not decision.authorized:
            emit_security_event(
                "authz.denied",
                ctx=ctx,
                principal_id=decision.principal_id,
                details={"useCaseRoles": list(decision.use_case_roles)},
            )
            raise AuthorizationFailure(params=decision.to_dict())


class AppStateMiddleware:
    """Block routes that do not run in the current application state."""

    __slots__ = ("_gate",)

    def __init__(self, gate: AppStateGate) -> None:
        self._gate = gate

    async def __call__(self, ctx: RequestContext) -> None:
        route = _route(ctx)
        ctx.app_state_info = await self._gate.check(route.app_states, route.path)


class ErrorRenderer:
    """Render any exception as the JSON error body.

    ``UseCaseError`` subclasses keep their status, code and params. Anything
    else becomes a 500 ``keel/internalError``. Tracebacks are included
    outside production.
    """

    __slots__ = ("_config",)

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    async def __call__(self, exc: BaseException, ctx: RequestContext) -> Response:
        if isinstance(exc, UseCaseError):
            status = exc.status
            body: dict[str, Any] = {
                "uri": ctx.uri.href,
                "message": exc.message,
                "code": exc.code,
                "params": exc.params,
                "status": status,
            }
            trace_id = exc.trace_id
        else:
            status = 500
            body = {
                "uri": ctx.uri.href,
                "message": "Internal server error.",
                "code": "keel/internalError",
                "params": {},
                "status": status,
            }
            trace_id = None

        body["timestamp"] = datetime.now(UTC).isoformat()
        trace_id = trace_id or ctx.request.headers.get(self._config.trace_header)
        if trace_id:
            body["traceId"] = trace_id
        if not self._config.is_production:
            body["trace"] = "".join(traceback.format_exception(exc))

        if status >= 500:
            logger.exception("%s failed with %s", ctx.uri.use_case, status, exc_info=exc)
        else:
            logger.debug("%s failed with %s: %s", ctx.uri.use_case, status, exc)
        return json_response(body, status=status)


def default_middleware(
    config: AppConfig,
    *,
    registry: RouteRegistry,
    tokens: TokenService,
    authorization: AuthorizationEngine,
    gate: AppStateGate,
) -> Iterable[Descriptor]:
    """The library's own steps, ready to be merged with application steps."""
    return (
        PreMiddleware(CONTEXT_ORDER, ContextMiddleware(registry), "context"),
        PreMiddleware(AUTHENTICATION_ORDER, AuthenticationMiddleware(tokens), "authentication"),
        PreMiddleware(AUTHORIZATION_ORDER, AuthorizationMiddleware(authorization), "authorization"),
        PreMiddleware(APP_STATE_ORDER, AppStateMiddleware(gate), "appState"),
        ErrorMiddleware(ERROR_RENDERER_ORDER, ErrorRenderer(config), "errorRenderer"),
    )
