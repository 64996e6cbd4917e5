"""ASGI request handling and response sending."""

from keel.server.handler import dispatch, handle_request
from keel.server.sender import send_response

__all__ = ["dispatch", "handle_request", "send_response"]
