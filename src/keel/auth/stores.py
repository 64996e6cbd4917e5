"""Refresh-token persistence.

``RefreshTokenStore`` is the protocol the authentication engine talks to.
Records are keyed by token id; rotation overwrites a record in place.
``InMemoryRefreshTokenStore`` is the reference implementation used by
tests and single-process deployments.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RefreshTokenRecord:
    token_id: str
    token: str
    csrf_token: str
    expires_at: datetime
    principal: dict[str, Any]

    @property
    def principal_id(self) -> str:
        return str(self.principal.get("id", ""))


@runtime_checkable
class RefreshTokenStore(Protocol):
    async def find_by_id(self, token_id: str) -> RefreshTokenRecord | None: ...

    async def upsert_by_id(self, record: RefreshTokenRecord) -> None: ...

    async def delete_by_id(self, token_id: str) -> bool: ...

    async def delete_by_principal(self, principal_id: str) -> int: ...


class InMemoryRefreshTokenStore:
    """Lock-guarded dict of refresh-token records."""

    __slots__ = ("_lock", "_records")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, RefreshTokenRecord] = {}

    async def find_by_id(self, token_id: str) -> RefreshTokenRecord | None:
        with self._lock:
            return self._records.get(token_id)

    async def upsert_by_id(self, record: RefreshTokenRecord) -> None:
        with self._lock:
            self._records[record.token_id] = replace(record, principal=dict(record.principal))

    async def delete_by_id(self, token_id: str) -> bool:
        with self._lock:
            return self._records.pop(token_id, None) is not None

    async def delete_by_principal(self, principal_id: str) -> int:
        with self._lock:
            doomed = [tid for tid, rec in self._records.items() if rec.principal_id == principal_id]
            for tid in doomed:
                del self._records[tid]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
