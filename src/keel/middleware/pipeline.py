"""Pipeline assembly and execution.

``assemble()`` takes the flat descriptor set contributed by the library
defaults and the application, checks it, sorts it by ``order`` and splits
it into the pre and error sequences. The result is built once at startup
and shared by every request.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from numbers import Real
from typing import TYPE_CHECKING

from keel._internal.invoke import invoke
from keel.errors import ConfigurationError
from keel.http.response import json_response
from keel.middleware.protocol import Descriptor, Dispatch, ErrorMiddleware, PreMiddleware

if TYPE_CHECKING:
    from keel.context import RequestContext
    from keel.http.response import Response

logger = logging.getLogger("keel.pipeline")


def _validate(descriptor: object) -> Descriptor:
    if not isinstance(descriptor, PreMiddleware | ErrorMiddleware):
        msg = (
            f"Middleware descriptor {descriptor!r} must be a PreMiddleware or ErrorMiddleware"
        )
        raise ConfigurationError(msg)
    order = descriptor.order
    if order is None or isinstance(order, bool) or not isinstance(order, Real):
        msg = f"Middleware {descriptor.label!r} has no numeric order (got {order!r})"
        raise ConfigurationError(msg)
    if math.isnan(order):
        msg = f"Middleware {descriptor.label!r} has a NaN order"
        raise ConfigurationError(msg)
    if not callable(descriptor.handler):
        msg = f"Middleware {descriptor.label!r} handler is not callable"
        raise ConfigurationError(msg)
    return descriptor


def default_error_response(ctx: RequestContext) -> Response:
    """The 500 body used when no error step produced a response."""
    return json_response(
        {
            "uri": ctx.uri.href,
            "message": "Internal server error.",
            "code": "keel/internalError",
            "params": {},
            "status": 500,
            "timestamp": datetime.now(UTC).isoformat(),
        },
        status=500,
    )


@dataclass(frozen=True, slots=True)
class Pipeline:
    """Sorted, partitioned middleware ready to run requests."""

    pre: tuple[PreMiddleware, ...] = ()
    error: tuple[ErrorMiddleware, ...] = ()

    @property
    def steps(self) -> tuple[Descriptor, ...]:
        return tuple(sorted((*self.pre, *self.error), key=lambda d: d.order))

    async def run(self, ctx: RequestContext, dispatch: Dispatch) -> Response:
        """Run one request through the pre steps, *dispatch*, and error steps.

        The context's accumulated headers and cookies are applied to the
        final response, error responses included.
        """
        try:
            response = await self._run_pre(ctx, dispatch)
        except Exception as exc:
            response = await self._run_error(exc, ctx)
        return ctx.apply(response)

    async def _run_pre(self, ctx: RequestContext, dispatch: Dispatch) -> Response:
        for step in self.pre:
            response = await invoke(step.handler, ctx)
            if response is not None:
                return response
        return await dispatch(ctx)

    async def _run_error(self, exc: Exception, ctx: RequestContext) -> Response:
        current: Exception = exc
        for step in self.error:
            try:
                response = await invoke(step.handler, current, ctx)
            except Exception as replacement:
                logger.debug(
                    "Error middleware %s replaced %r with %r", step.label, current, replacement
                )
                current = replacement
                continue
            if response is not None:
                return response
        logger.error("Unhandled error for %s", ctx.uri.use_case, exc_info=current)
        return default_error_response(ctx)


def assemble(descriptors: Iterable[object]) -> Pipeline:
    """Validate, sort and partition *descriptors*.

    Raises:
        ConfigurationError: On an invalid descriptor or when two descriptors
            share an order value. The message names both.
    """
    checked = sorted((_validate(d) for d in descriptors), key=lambda d: d.order)
    for previous, current in zip(checked, checked[1:], strict=False):
        if previous.order == current.order:
            msg = (
                f"Middleware {previous.label!r} and {current.label!r} "
                f"share order {current.order}"
            )
            raise ConfigurationError(msg)

    pre = tuple(d for d in checked if isinstance(d, PreMiddleware))
    error = tuple(d for d in checked if isinstance(d, ErrorMiddleware))
    for descriptor in checked:
        kind = "pre" if isinstance(descriptor, PreMiddleware) else "error"
        logger.info("Registered %s middleware %s at order %s", kind, descriptor.label, descriptor.order)
    return Pipeline(pre=pre, error=error)
