"""Application states a deployment moves through."""

from enum import StrEnum


class AppState(StrEnum):
    INITIAL = "initial"
    ACTIVE = "active"
    IN_MAINTENANCE = "inMaintenance"


ALL_STATES: tuple[AppState, ...] = tuple(AppState)
