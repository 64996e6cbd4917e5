"""Authorization engine: cached role resolution and role-set checks.

Roles are fetched through an LRU+TTL cache keyed by principal id.
``grant`` and ``revoke`` write through to the store and invalidate that
principal's entry, so the next request sees the change. Other processes
sharing the store see it after the TTL.
"""

from __future__ import annotations

import logging

from keel.authz.result import AuthorizationDecision
from keel.authz.stores import RoleStore
from keel.cache import LruTtlCache
from keel.config import AppConfig
from keel.errors import ConfigurationError
from keel.routing.registry import RouteRegistry

logger = logging.getLogger("keel.authz")


class AuthorizationEngine:
    """Resolves a principal's roles and decides use-case access."""

    __slots__ = ("_cache", "_registry", "_store")

    def __init__(
        self,
        registry: RouteRegistry,
        store: RoleStore,
        *,
        cache_ttl: float = 5 * 60,
        cache_max: int = 10_000,
    ) -> None:
        self._registry = registry
        self._store = store
        self._cache: LruTtlCache[str, tuple[str, ...]] = LruTtlCache(
            ttl=cache_ttl, max_size=cache_max
        )

    @classmethod
    def from_config(
        cls, config: AppConfig, registry: RouteRegistry, store: RoleStore
    ) -> AuthorizationEngine:
        return cls(
            registry,
            store,
            cache_ttl=config.authorization_cache_ttl,
            cache_max=config.authorization_cache_max,
        )

    @property
    def store(self) -> RoleStore:
        return self._store

    async def get_roles(self, principal_id: str) -> tuple[str, ...]:
        """Return the principal's roles, from cache when fresh."""

        async def fetch() -> tuple[str, ...]:
            roles = tuple(await self._store.list_roles_for_principal(principal_id))
            logger.debug("Fetched %d role(s) for %s", len(roles), principal_id)
            return roles

        return await self._cache.get_or_fetch(principal_id, fetch)

    def invalidate(self, principal_id: str) -> None:
        self._cache.delete(principal_id)

    async def grant(self, principal_id: str, role: str) -> None:
        await self._store.grant(principal_id, role)
        self.invalidate(principal_id)

    async def revoke(self, principal_id: str, role: str | None = None) -> str:
        """Revoke one role, or every role when *role* is ``None``.

        Returns the revoked role name, or ``"all"``.
        """
        if role is None:
            await self._store.revoke_all(principal_id)
            revoked = "all"
        else:
            await self._store.revoke(principal_id, role)
            revoked = role
        self.invalidate(principal_id)
        return revoked

    async def authorize(self, use_case: str, principal_id: str) -> AuthorizationDecision:
        """Decide whether *principal_id* may run *use_case*.

        A route requiring ``Authenticated`` admits every principal;
        otherwise access needs at least one shared role.

        Raises:
            ConfigurationError: If the use case has no route.
        """
        route = self._registry.lookup(use_case)
        if route is None:
            msg = f"Role configuration not found for use case {use_case!r}"
            raise ConfigurationError(msg)

        user_roles = await self.get_roles(principal_id)
        if route.admits_any_principal:
            authorized = True
        else:
            authorized = not route.roles.isdisjoint(user_roles)

        return AuthorizationDecision(
            principal_id=principal_id,
            use_case=route.path,
            use_case_roles=tuple(sorted(route.roles)),
            user_roles=user_roles,
            authorized=authorized,
        )
