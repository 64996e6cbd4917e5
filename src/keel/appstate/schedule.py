"""Schedule entries and the resolved current state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from keel.appstate.states import AppState

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def to_instant(value: datetime | str) -> datetime:
    """Coerce an ISO-8601 string or datetime to an aware UTC datetime.

    Naive values are taken to be UTC.

    Raises:
        ValueError: If a string is not ISO-8601.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True, slots=True)
class ScheduleEntry:
    """One scheduled transition: *state* takes effect at *effective_from*."""

    state: AppState
    effective_from: datetime
    reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "state", AppState(self.state))
        object.__setattr__(self, "effective_from", to_instant(self.effective_from))

    def to_dict(self) -> dict[str, Any]:
        return {
            "appState": self.state.value,
            "from": self.effective_from.isoformat(),
            "reason": self.reason,
        }


@dataclass(frozen=True, slots=True)
class CurrentState:
    """The state in force at some instant.

    ``is_default`` is true when no schedule entry applies and the system
    fell back to ``INITIAL``.
    """

    state: AppState
    effective_from: datetime
    reason: str | None
    is_default: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "appState": self.state.value,
            "from": self.effective_from.isoformat(),
            "reason": self.reason,
            "isDefault": self.is_default,
        }
