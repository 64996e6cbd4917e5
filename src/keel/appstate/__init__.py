"""Scheduled application states and the request gate."""

from keel.appstate.gate import AppStateGate
from keel.appstate.schedule import CurrentState, ScheduleEntry, to_instant
from keel.appstate.states import ALL_STATES, AppState
from keel.appstate.stores import AppStateStore, InMemoryAppStateStore

__all__ = [
    "ALL_STATES",
    "AppState",
    "AppStateGate",
    "AppStateStore",
    "CurrentState",
    "InMemoryAppStateStore",
    "ScheduleEntry",
    "to_instant",
]
