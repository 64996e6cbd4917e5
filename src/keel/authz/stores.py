"""Role-grant persistence.

``RoleStore`` is the protocol the authorization engine reads from and
the permission use cases write to. ``InMemoryRoleStore`` is the
reference implementation.
"""

import threading
from typing import Protocol, runtime_checkable


@runtime_checkable
class RoleStore(Protocol):
    async def list_roles_for_principal(self, principal_id: str) -> list[str]: ...

    async def grant(self, principal_id: str, role: str) -> None: ...

    async def revoke(self, principal_id: str, role: str) -> bool: ...

    async def revoke_all(self, principal_id: str) -> int: ...

    async def list_all(self) -> dict[str, list[str]]: ...


class InMemoryRoleStore:
    """Lock-guarded principal -> roles mapping. Grants are idempotent."""

    __slots__ = ("_grants", "_lock", "reads")

    def __init__(self, grants: dict[str, list[str]] | None = None) -> None:
        self._lock = threading.Lock()
        self._grants: dict[str, list[str]] = {
            principal: list(dict.fromkeys(roles)) for principal, roles in (grants or {}).items()
        }
        # Number of list_roles_for_principal calls; lets callers observe caching
        self.reads = 0

    async def list_roles_for_principal(self, principal_id: str) -> list[str]:
        with self._lock:
            self.reads += 1
            return list(self._grants.get(principal_id, ()))

    async def grant(self, principal_id: str, role: str) -> None:
        with self._lock:
            roles = self._grants.setdefault(principal_id, [])
            if role not in roles:
                roles.append(role)

    async def revoke(self, principal_id: str, role: str) -> bool:
        with self._lock:
            roles = self._grants.get(principal_id, [])
            if role not in roles:
                return False
            roles.remove(role)
            return True

    async def revoke_all(self, principal_id: str) -> int:
        with self._lock:
            return len(self._grants.pop(principal_id, []))

    async def list_all(self) -> dict[str, list[str]]:
        with self._lock:
            return {principal: list(roles) for principal, roles in self._grants.items() if roles}
