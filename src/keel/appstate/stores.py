"""Schedule persistence.

The schedule is one singleton document holding every entry in ascending
``effective_from`` order. ``AppStateStore`` reads and replaces it whole.
"""

import threading
from typing import Protocol, runtime_checkable

from keel.appstate.schedule import ScheduleEntry


@runtime_checkable
class AppStateStore(Protocol):
    async def get_schedule(self) -> list[ScheduleEntry]: ...

    async def upsert_schedule(self, entries: list[ScheduleEntry]) -> None: ...


class InMemoryAppStateStore:
    __slots__ = ("_entries", "_lock", "reads")

    def __init__(self, entries: list[ScheduleEntry] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: list[ScheduleEntry] = sorted(
            entries or (), key=lambda e: e.effective_from
        )
        self.reads = 0

    async def get_schedule(self) -> list[ScheduleEntry]:
        with self._lock:
            self.reads += 1
            return list(self._entries)

    async def upsert_schedule(self, entries: list[ScheduleEntry]) -> None:
        with self._lock:
            self._entries = list(entries)
