"""Role-based authorization."""

from keel.authz.engine import AuthorizationEngine
from keel.authz.result import AuthorizationDecision
from keel.authz.stores import InMemoryRoleStore, RoleStore

__all__ = [
    "AuthorizationDecision",
    "AuthorizationEngine",
    "InMemoryRoleStore",
    "RoleStore",
]
