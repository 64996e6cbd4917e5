"""Middleware descriptors, pipeline assembly and the built-in steps.

Pre steps take ``(ctx)``; error steps take ``(exc, ctx)``. Both return a
``Response`` to end the pipeline or ``None`` to continue.
"""

from keel.middleware.builtin import (
    AppStateMiddleware,
    AuthenticationMiddleware,
    AuthorizationMiddleware,
    ContextMiddleware,
    ErrorRenderer,
    default_middleware,
)
from keel.middleware.pipeline import Pipeline, assemble, default_error_response
from keel.middleware.protocol import (
    Descriptor,
    Dispatch,
    ErrorMiddleware,
    PreMiddleware,
    middleware,
)

__all__ = [
    "AppStateMiddleware",
    "AuthenticationMiddleware",
    "AuthorizationMiddleware",
    "ContextMiddleware",
    "Descriptor",
    "Dispatch",
    "ErrorMiddleware",
    "ErrorRenderer",
    "Pipeline",
    "PreMiddleware",
    "assemble",
    "default_error_response",
    "default_middleware",
    "middleware",
]
