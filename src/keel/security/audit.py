"""Security audit events.

Opt-in event channel for authentication and authorization telemetry:
logins, token refreshes, logouts, and denied requests. Applications
register a sink to forward events to logs, metrics, or a SIEM.

Event names emitted by keel:

- ``auth.login.success`` / ``auth.login.failure``
- ``auth.refresh.success`` / ``auth.refresh.failure``
- ``auth.logout`` (``details["global"]`` tells which kind)
- ``auth.credentials.purged``
- ``auth.token.rejected``
- ``authz.denied``
- ``appstate.blocked``
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from time import time
from typing import Any, TypeAlias

logger = logging.getLogger("keel.security")


@dataclass(frozen=True, slots=True)
class SecurityEvent:
    name: str
    timestamp: float = field(default_factory=time)
    use_case: str | None = None
    method: str | None = None
    principal_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


SecurityEventSink: TypeAlias = Callable[[SecurityEvent], None]


_sink_lock = threading.Lock()
_sink: SecurityEventSink | None = None


def set_security_event_sink(sink: SecurityEventSink | None) -> None:
    """Set the process-wide sink. ``None`` disables delivery."""
    global _sink
    with _sink_lock:
        _sink = sink


def emit_security_event(
    name: str,
    *,
    ctx: Any | None = None,
    principal_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Deliver an event to the configured sink, if any.

    *ctx* is the active ``RequestContext``; its use case and method are
    copied onto the event.
    """
    logger.debug("security event %s principal=%s", name, principal_id)
    with _sink_lock:
        sink = _sink
    if sink is None:
        return

    use_case = None
    method = None
    if ctx is not None:
        use_case = ctx.uri.use_case
        method = ctx.request.method

    sink(
        SecurityEvent(
            name=name,
            use_case=use_case,
            method=method,
            principal_id=principal_id,
            details=details or {},
        )
    )
