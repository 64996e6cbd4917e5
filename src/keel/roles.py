"""Role names and role categories.

``Public`` and ``Authenticated`` are sentinels, not grantable roles:
a route requiring ``Public`` skips authentication entirely, and one
requiring ``Authenticated`` admits any verified principal.

Categories decide which roles the permission use cases accept:

- ``privileged`` roles (``Admin``) are granted only through the
  secret-backed bootstrap use case.
- ``protected`` roles are the two sentinels and can never be granted.
- ``application`` roles (``Authority`` plus anything the app adds) are
  granted and revoked by administrators.
"""

import threading
from enum import StrEnum


class RoleCategory(StrEnum):
    PRIVILEGED = "privileged"
    PROTECTED = "protected"
    APPLICATION = "application"


class DefaultRoles:
    ADMIN = "Admin"
    PUBLIC = "Public"
    AUTHENTICATED = "Authenticated"
    AUTHORITY = "Authority"


class RoleCatalog:
    """Known roles grouped by category. Applications add their own roles."""

    __slots__ = ("_categories", "_lock")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._categories: dict[RoleCategory, list[str]] = {
            RoleCategory.PRIVILEGED: [DefaultRoles.ADMIN],
            RoleCategory.PROTECTED: [DefaultRoles.PUBLIC, DefaultRoles.AUTHENTICATED],
            RoleCategory.APPLICATION: [DefaultRoles.AUTHORITY],
        }

    def add(self, role: str, category: RoleCategory | str = RoleCategory.APPLICATION) -> None:
        """Register *role* under *category*. Re-adding a role is a no-op."""
        category = RoleCategory(category)
        with self._lock:
            if role in self._all():
                return
            self._categories[category].append(role)

    def category_of(self, role: str) -> RoleCategory | None:
        with self._lock:
            for category, roles in self._categories.items():
                if role in roles:
                    return category
        return None

    def roles(self, category: RoleCategory | str) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._categories[RoleCategory(category)])

    @property
    def all(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._all())

    def _all(self) -> list[str]:
        return [role for roles in self._categories.values() for role in roles]
