"""Library default use cases.

``default_routes(services)`` returns the ``/user``, ``/permission`` and
``/sys`` route tables merged into one. Applications override any entry by
registering the same path.
"""

from keel.routes.permission import permission_routes
from keel.routes.schemas import DEFAULT_SCHEMAS
from keel.routes.services import Services
from keel.routes.system import sys_routes
from keel.routes.user import user_routes
from keel.routing.route import RouteConfig


def default_routes(services: Services) -> dict[str, RouteConfig]:
    return {
        **user_routes(services),
        **permission_routes(services),
        **sys_routes(services),
    }


__all__ = [
    "DEFAULT_SCHEMAS",
    "Services",
    "default_routes",
    "permission_routes",
    "sys_routes",
    "user_routes",
]
