"""Immutable multi-value mappings: headers, query strings, form fields.

All three share ``MultiDict``: ``m[key]`` returns the first value,
``m.get_list(key)`` returns every value, and ``m.to_dict()`` flattens
into the plain dict shape used for the request ``input``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from urllib.parse import parse_qsl


class MultiDict(Mapping[str, str]):
    """Read-only mapping that keeps repeated keys."""

    __slots__ = ("_data",)

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        data: dict[str, list[str]] = {}
        for key, value in items:
            data.setdefault(self._key(key), []).append(value)
        object.__setattr__(self, "_data", data)

    @staticmethod
    def _key(key: str) -> str:
        return key

    def __getitem__(self, key: str) -> str:
        return self._data[self._key(key)][0]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._key(key) in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_dict()!r})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        values = self._data.get(self._key(key))
        return values[0] if values else default

    def get_list(self, key: str) -> list[str]:
        return list(self._data.get(self._key(key), ()))

    def to_dict(self) -> dict[str, str | list[str]]:
        """Single values stay strings; repeated keys become lists."""
        return {k: v[0] if len(v) == 1 else list(v) for k, v in self._data.items()}


class Headers(MultiDict):
    """Case-insensitive request headers decoded from ASGI byte pairs."""

    __slots__ = ()

    @staticmethod
    def _key(key: str) -> str:
        return key.lower()

    @classmethod
    def from_raw(cls, raw: Iterable[tuple[bytes, bytes]]) -> Headers:
        return cls((name.decode("latin-1"), value.decode("latin-1")) for name, value in raw)

    def first_of(self, *names: str) -> str | None:
        """Return the value of the first header present among *names*."""
        for name in names:
            value = self.get(name)
            if value:
                return value
        return None


class QueryParams(MultiDict):
    """Parsed query string. Keeps the raw string for URL rebuilding."""

    __slots__ = ("raw",)

    def __init__(self, query_string: bytes | str = b"") -> None:
        if isinstance(query_string, bytes):
            query_string = query_string.decode("latin-1")
        super().__init__(parse_qsl(query_string, keep_blank_values=True))
        object.__setattr__(self, "raw", query_string)
