"""Application-state gate.

Resolves which ``AppState`` is in force from a time-ordered schedule and
blocks requests whose route does not allow it. The resolved state is
cached for a short TTL; ``schedule()`` invalidates the cache before it
returns, so the writing process sees the change on its next request.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from keel.appstate.schedule import EPOCH, CurrentState, ScheduleEntry, to_instant
from keel.appstate.states import AppState
from keel.appstate.stores import AppStateStore
from keel.cache import LruTtlCache
from keel.config import AppConfig
from keel.errors import AppStateBlocked

logger = logging.getLogger("keel.appstate")

CURRENT_STATE_KEY = "current_app_state"
SKIPPED_REASON = "Check skipped via configuration."


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _default_state(reason_suffix: str) -> CurrentState:
    return CurrentState(
        state=AppState.INITIAL,
        effective_from=EPOCH,
        reason=f"System initial default state. {reason_suffix}",
        is_default=True,
    )


class AppStateGate:
    """Resolves, caches, schedules, and enforces application states."""

    __slots__ = ("_cache", "_clock", "_skip_check", "_store")

    def __init__(
        self,
        store: AppStateStore,
        *,
        cache_ttl: float = 60.0,
        cache_max: int = 1,
        skip_check: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._skip_check = skip_check
        self._clock = clock
        self._cache: LruTtlCache[str, CurrentState] = LruTtlCache(
            ttl=cache_ttl, max_size=cache_max
        )

    @classmethod
    def from_config(cls, config: AppConfig, store: AppStateStore) -> AppStateGate:
        return cls(
            store,
            cache_ttl=config.app_state_cache_ttl,
            cache_max=config.app_state_cache_max,
            skip_check=config.skip_app_state_check,
        )

    async def resolve(self, now: datetime | None = None) -> CurrentState:
        """Return the entry with the latest ``effective_from`` not after *now*.

        Falls back to ``INITIAL`` (``is_default=True``) when the schedule is
        empty or every entry lies in the future.
        """
        instant = to_instant(now) if now is not None else self._clock()
        entries = await self._store.get_schedule()
        if not entries:
            return _default_state("No schedule configured.")

        current: ScheduleEntry | None = None
        for entry in entries:
            if entry.effective_from <= instant and (
                current is None or entry.effective_from >= current.effective_from
            ):
                current = entry
        if current is None:
            return _default_state("All scheduled states are in the future.")
        return CurrentState(
            state=current.state,
            effective_from=current.effective_from,
            reason=current.reason,
            is_default=False,
        )

    async def current_state(self) -> CurrentState:
        return await self._cache.get_or_fetch(CURRENT_STATE_KEY, self.resolve)

    async def get_schedule(self) -> list[ScheduleEntry]:
        return await self._store.get_schedule()

    async def schedule(self, entry: ScheduleEntry) -> list[ScheduleEntry]:
        """Add *entry*, replacing any entry at the same instant.

        Persists the ascending schedule and drops the cached state before
        returning it.
        """
        entries = [
            e for e in await self._store.get_schedule() if e.effective_from != entry.effective_from
        ]
        entries.append(entry)
        entries.sort(key=lambda e: e.effective_from)
        await self._store.upsert_schedule(entries)
        self.clear_cache()
        logger.info(
            "Scheduled app state %s from %s", entry.state.value, entry.effective_from.isoformat()
        )
        return entries

    def clear_cache(self) -> None:
        self._cache.delete(CURRENT_STATE_KEY)

    async def check(self, allowed: Iterable[AppState], route: str) -> dict[str, Any]:
        """Admit or block a request for *route*.

        Returns the state snapshot to store on the request context.

        Raises:
            AppStateBlocked: The current state is not in *allowed*.
        """
        if self._skip_check:
            return {
                "checkSkipped": True,
                "appState": AppState.INITIAL.value,
                "reason": SKIPPED_REASON,
            }

        current = await self.current_state()
        info = {**current.to_dict(), "checkSkipped": False}
        allowed_states = [AppState(state) for state in allowed]
        if current.state not in allowed_states:
            raise AppStateBlocked(
                current.to_dict(),
                [state.value for state in allowed_states],
                route,
            )
        return info
