"""Route registry: use-case path to route config, exact match.

Mutable during setup, frozen when the app starts serving. Lookups are a
single dict access on the normalized path; there is no pattern
matching.

Overrides replace by key: registering a path that already exists swaps
the whole entry, so an application can replace a library default use
case wholesale.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Iterator, Mapping
from typing import Any, TypeAlias

from keel._internal.invoke import invoke
from keel.appstate.states import AppState
from keel.errors import ConfigurationError
from keel.http.response import Response, empty_response, json_response
from keel.routing.route import Endpoint, Route, RouteConfig

logger = logging.getLogger("keel.routing")

HTTP_METHODS = frozenset({"get", "post", "put", "patch", "delete", "head"})

RouteTable: TypeAlias = Mapping[str, RouteConfig | Mapping[str, Any]]


def normalize_path(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"


def to_response(result: Any) -> Response:
    """Convert a handler's return value into a Response.

    ``Response`` passes through, ``None`` becomes 204, strings become
    plain text, anything else is serialized as JSON.
    """
    if isinstance(result, Response):
        return result
    if result is None:
        return empty_response()
    if isinstance(result, str):
        return Response(body=result)
    return json_response(result)


def wrap(handler: Callable[..., Any]) -> Endpoint:
    """Adapt a sync or async use-case handler to the pipeline's endpoint shape.

    The handler receives the request context. Exceptions propagate so the
    pipeline can run its error sequence.
    """

    @functools.wraps(handler)
    async def endpoint(ctx: Any) -> Response:
        return to_response(await invoke(handler, ctx))

    return endpoint


def _coerce_config(path: str, config: RouteConfig | Mapping[str, Any]) -> RouteConfig:
    if isinstance(config, RouteConfig):
        return config
    if not isinstance(config, Mapping):
        msg = f"Route {path!r}: config must be a RouteConfig or a mapping, got {type(config).__name__}"
        raise ConfigurationError(msg)
    unknown = set(config) - {"method", "handler", "roles", "app_states"}
    if unknown:
        msg = f"Route {path!r}: unknown config keys {sorted(unknown)}"
        raise ConfigurationError(msg)
    try:
        return RouteConfig(**config)
    except TypeError as exc:
        msg = f"Route {path!r}: {exc}"
        raise ConfigurationError(msg) from exc


def build_route(path: Any, config: Any) -> Route:
    """Validate one route declaration and produce a ``Route``.

    Raises:
        ConfigurationError: On a non-string path, an unsupported method,
            a non-callable handler, roles that are not a non-empty list
            of strings, or unknown application states.
    """
    if not isinstance(path, str) or not path.strip("/"):
        msg = f"Route path must be a non-empty string, got {path!r}"
        raise ConfigurationError(msg)
    path = normalize_path(path)
    cfg = _coerce_config(path, config)

    method = cfg.method.lower() if isinstance(cfg.method, str) else cfg.method
    if not isinstance(method, str) or method not in HTTP_METHODS:
        allowed = ", ".join(sorted(HTTP_METHODS))
        msg = f"Route {path!r}: unsupported method {cfg.method!r}. Use one of: {allowed}"
        raise ConfigurationError(msg)

    if not callable(cfg.handler):
        msg = f"Route {path!r}: handler must be callable, got {type(cfg.handler).__name__}"
        raise ConfigurationError(msg)

    if not isinstance(cfg.roles, list | tuple | set | frozenset) or not all(isinstance(r, str) for r in cfg.roles):
        msg = f"Route {path!r}: roles must be a list of role names, got {cfg.roles!r}"
        raise ConfigurationError(msg)
    if not cfg.roles:
        msg = f"Route {path!r}: roles must name at least one role"
        raise ConfigurationError(msg)

    app_states: tuple[AppState, ...] = (AppState.ACTIVE,)
    if cfg.app_states is not None:
        try:
            app_states = tuple(AppState(state) for state in cfg.app_states)
        except (TypeError, ValueError) as exc:
            msg = f"Route {path!r}: invalid app_states {cfg.app_states!r}"
            raise ConfigurationError(msg) from exc

    return Route(
        path=path,
        method=method,
        handler=cfg.handler,
        roles=frozenset(cfg.roles),
        app_states=app_states,
        endpoint=wrap(cfg.handler),
    )


class RouteRegistry:
    """Use-case path to ``Route``, looked up by exact normalized path."""

    __slots__ = ("_frozen", "_routes")

    def __init__(self) -> None:
        self._routes: dict[str, Route] = {}
        self._frozen = False

    @classmethod
    def merge(cls, *tables: RouteTable) -> RouteRegistry:
        """Build a registry from route tables, later tables overriding earlier ones."""
        registry = cls()
        for table in tables:
            for path, config in table.items():
                registry.register(path, config)
        return registry

    def register(self, path: str, config: RouteConfig | Mapping[str, Any]) -> Route:
        if self._frozen:
            msg = "Cannot register routes after the app has started serving requests."
            raise RuntimeError(msg)
        route = build_route(path, config)
        if route.path in self._routes:
            logger.debug("Route %s overridden", route.path)
        self._routes[route.path] = route
        return route

    def lookup(self, path: str) -> Route | None:
        return self._routes.get(normalize_path(path))

    def routes(self) -> tuple[Route, ...]:
        return tuple(self._routes.values())

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and normalize_path(path) in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes.values())
