"""Use-case routing: exact-match registry of route configs."""

from keel.routing.registry import (
    HTTP_METHODS,
    RouteRegistry,
    build_route,
    normalize_path,
    to_response,
    wrap,
)
from keel.routing.route import Route, RouteConfig

__all__ = [
    "HTTP_METHODS",
    "Route",
    "RouteConfig",
    "RouteRegistry",
    "build_route",
    "normalize_path",
    "to_response",
    "wrap",
]
