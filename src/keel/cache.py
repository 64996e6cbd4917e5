"""Bounded TTL cache with LRU eviction and fetch-through.

Backs role resolution and the current application state. Entries expire
after ``ttl`` seconds and the least recently used entry is evicted once
``max_size`` is reached. A ``ttl`` or ``max_size`` of zero disables
caching entirely: every ``get_or_fetch`` calls the fetcher.

Concurrent misses for the same key are not coalesced; each caller runs
its own fetch and the last write wins.
"""

import threading
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable
from time import monotonic
from typing import Generic, TypeVar

_MISSING = object()

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LruTtlCache(Generic[K, V]):
    """Thread-safe LRU cache with per-entry expiry."""

    __slots__ = ("_clock", "_data", "_lock", "_max_size", "_ttl")

    def __init__(
        self,
        *,
        ttl: float,
        max_size: int,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (expires_at, value), oldest first
        self._data: OrderedDict[K, tuple[float, V]] = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self._ttl > 0 and self._max_size > 0

    def get(self, key: K, default: V | None = None) -> V | None:
        """Return a live entry and mark it recently used, else *default*."""
        value = self._lookup(key)
        return default if value is _MISSING else value  # type: ignore[return-value]

    def set(self, key: K, value: V) -> None:
        if not self.enabled:
            return
        expires_at = self._clock() + self._ttl
        with self._lock:
            self._data[key] = (expires_at, value)
            self._data.move_to_end(key)
            while len(self._data) > self._max_size:
                self._data.popitem(last=False)

    def delete(self, key: K) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    async def get_or_fetch(self, key: K, fetch: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value, or await *fetch* and cache its result.

        Errors from *fetch* propagate and nothing is cached.
        """
        if not self.enabled:
            return await fetch()
        value = self._lookup(key)
        if value is not _MISSING:
            return value  # type: ignore[return-value]
        fetched = await fetch()
        self.set(key, fetched)
        return fetched

    def __contains__(self, key: object) -> bool:
        return self._lookup(key) is not _MISSING  # type: ignore[arg-type]

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for expires_at, _ in self._data.values() if expires_at > now)

    def _lookup(self, key: K) -> object:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return _MISSING
            expires_at, value = entry
            if expires_at <= now:
                del self._data[key]
                return _MISSING
            self._data.move_to_end(key)
            return value
