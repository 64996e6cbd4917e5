"""Security telemetry."""

from keel.security.audit import (
    SecurityEvent,
    SecurityEventSink,
    emit_security_event,
    set_security_event_sink,
)

__all__ = [
    "SecurityEvent",
    "SecurityEventSink",
    "emit_security_event",
    "set_security_event_sink",
]
