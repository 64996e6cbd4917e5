"""ASGI handler: one request in, one pipeline run, one response out.

The only component besides the sender that touches raw ASGI messages.
"""

import logging
from contextvars import Token

from keel._internal.asgi import Receive, Scope, Send
from keel.context import RequestContext, context_var
from keel.errors import HandlerNotFound
from keel.http.request import Request
from keel.http.response import Response
from keel.middleware.pipeline import Pipeline
from keel.server.sender import send_response

logger = logging.getLogger("keel.server")


async def dispatch(ctx: RequestContext) -> Response:
    """Run the resolved route's endpoint."""
    route = ctx.mapping
    if route is None or route.endpoint is None:
        raise HandlerNotFound(ctx.uri.use_case)
    return await route.endpoint(ctx)


async def handle_request(scope: Scope, receive: Receive, send: Send, *, pipeline: Pipeline) -> None:
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    ctx = RequestContext(request)
    token: Token[RequestContext] = context_var.set(ctx)
    try:
        response = await pipeline.run(ctx, dispatch)
    finally:
        context_var.reset(token)

    logger.debug("%s %s -> %d", request.method, request.path, response.status)
    await send_response(response, send)
