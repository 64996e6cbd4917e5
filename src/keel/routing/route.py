"""Route and RouteConfig frozen dataclasses."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

from keel.appstate.states import AppState
from keel.roles import DefaultRoles

if TYPE_CHECKING:
    from keel.context import RequestContext
    from keel.http.response import Response

Endpoint: TypeAlias = "Callable[[RequestContext], Awaitable[Response]]"


@dataclass(frozen=True, slots=True)
class RouteConfig:
    """What an application declares for one use case.

    ``app_states`` of ``None`` means the route runs only while the
    application is ``ACTIVE``.
    """

    method: str
    handler: Callable[..., Any]
    roles: tuple[str, ...] | list[str] | frozenset[str]
    app_states: tuple[AppState, ...] | list[AppState] | None = None


@dataclass(frozen=True, slots=True)
class Route:
    """A registered use case. Immutable once the registry is frozen."""

    path: str
    method: str
    handler: Callable[..., Any]
    roles: frozenset[str]
    app_states: tuple[AppState, ...] = (AppState.ACTIVE,)
    endpoint: Endpoint | None = field(default=None, repr=False, compare=False)

    @property
    def is_public(self) -> bool:
        return DefaultRoles.PUBLIC in self.roles

    @property
    def admits_any_principal(self) -> bool:
        return DefaultRoles.AUTHENTICATED in self.roles
