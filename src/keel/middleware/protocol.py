"""Middleware descriptors.

A pipeline step is one of two tagged variants::

    PreMiddleware(order=-50, handler=fn)     # async fn(ctx) -> Response | None
    ErrorMiddleware(order=50, handler=fn)    # async fn(exc, ctx) -> Response | None

Pre steps run in ascending order before the route handler. Returning a
``Response`` ends the pipeline; ``None`` continues. Raising skips the
remaining pre steps and the handler, and runs the error steps in
ascending order instead.

``middleware()`` builds the right variant from a bare callable by counting
its positional parameters, for collaborators that hand over plain
functions.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

from keel.errors import ConfigurationError

if TYPE_CHECKING:
    from keel.context import RequestContext
    from keel.http.response import Response

PreHandler: TypeAlias = "Callable[[RequestContext], Awaitable[Response | None]]"
ErrorHandler: TypeAlias = "Callable[[BaseException, RequestContext], Awaitable[Response | None]]"
Dispatch: TypeAlias = "Callable[[RequestContext], Awaitable[Response]]"


def _handler_name(handler: object) -> str:
    return getattr(handler, "__qualname__", None) or type(handler).__name__


@dataclass(frozen=True, slots=True)
class PreMiddleware:
    order: float
    handler: PreHandler
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or _handler_name(self.handler)


@dataclass(frozen=True, slots=True)
class ErrorMiddleware:
    order: float
    handler: ErrorHandler
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or _handler_name(self.handler)


Descriptor: TypeAlias = PreMiddleware | ErrorMiddleware


def _positional_count(handler: Callable[..., object]) -> int:
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError) as exc:
        msg = f"Cannot inspect middleware handler {_handler_name(handler)!r}: {exc}"
        raise ConfigurationError(msg) from exc
    return sum(
        1
        for param in signature.parameters.values()
        if param.kind
        in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    )


def middleware(
    order: float, handler: Callable[..., object], name: str | None = None
) -> Descriptor:
    """Wrap a bare callable as a descriptor.

    One positional parameter ``(ctx)`` makes a ``PreMiddleware``; two
    ``(exc, ctx)`` make an ``ErrorMiddleware``.

    Raises:
        ConfigurationError: If *handler* is not callable or takes any other
            number of positional parameters.
    """
    if not callable(handler):
        msg = f"Middleware handler {handler!r} is not callable"
        raise ConfigurationError(msg)
    count = _positional_count(handler)
    if count == 1:
        return PreMiddleware(order, handler, name)
    if count == 2:
        return ErrorMiddleware(order, handler, name)
    msg = (
        f"Middleware handler {name or _handler_name(handler)!r} takes {count} "
        "positional parameter(s); expected 1 (ctx) or 2 (exc, ctx)"
    )
    raise ConfigurationError(msg)
