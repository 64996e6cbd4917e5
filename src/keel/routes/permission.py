"""``/permission/*`` use cases: granting, revoking and listing roles.

Administrators manage application roles. Privileged roles are obtained
only through ``secretGrant``, which checks the deployment's grant key.
"""

import hmac
import logging
from typing import Any

from keel.appstate.states import ALL_STATES
from keel.context import RequestContext
from keel.errors import (
    AuthenticationFailure,
    CannotLoadRoles,
    PermissionSecretNotAvailable,
    PermissionSecretNotMatching,
    ValidationFailure,
)
from keel.roles import DefaultRoles, RoleCategory
from keel.routes.services import Services
from keel.routing.route import RouteConfig
from keel.security.audit import emit_security_event

logger = logging.getLogger("keel.authz")

_MANAGERS = (DefaultRoles.ADMIN, DefaultRoles.AUTHORITY)


def _principal_id(ctx: RequestContext) -> str:
    if ctx.session is None:
        raise AuthenticationFailure("missingHeader")
    return ctx.session.principal_id


def permission_routes(services: Services) -> dict[str, RouteConfig]:
    authz = services.authorization
    catalog = services.roles
    validator = services.validator
    config = services.config

    def require_category(ctx: RequestContext, role: str, category: RoleCategory) -> None:
        if catalog.category_of(role) != category:
            raise ValidationFailure(
                {"role": [f"Role {role!r} is not a known {category.value} role"]},
                use_case=ctx.uri.use_case,
            )

    async def grant(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        require_category(ctx, data["role"], RoleCategory.APPLICATION)
        await authz.grant(data["user"], data["role"])
        emit_security_event(
            "authz.grant",
            ctx=ctx,
            principal_id=_principal_id(ctx),
            details={"user": data["user"], "role": data["role"]},
        )
        return {"user": data["user"], "role": data["role"], "granted": True}

    async def revoke(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        revoke_all = data.get("all") in (True, "true")
        role = data.get("role")
        if role is None and not revoke_all:
            raise ValidationFailure(
                {"role": ["Provide a role or set all to true"]}, use_case=ctx.uri.use_case
            )
        if not revoke_all:
            require_category(ctx, role, RoleCategory.APPLICATION)
        revoked = await authz.revoke(data["user"], None if revoke_all else role)
        emit_security_event(
            "authz.revoke",
            ctx=ctx,
            principal_id=_principal_id(ctx),
            details={"user": data["user"], "role": revoked},
        )
        return {"user": data["user"], "role": revoked, "revoked": True}

    async def list_roles(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        caller = _principal_id(ctx)
        target = data.get("user") or caller
        if target != caller:
            caller_roles = await authz.get_roles(caller)
            if not any(role in _MANAGERS for role in caller_roles):
                raise CannotLoadRoles(list(caller_roles), list(_MANAGERS))
        return {"user": target, "roles": list(await authz.get_roles(target))}

    async def list_all(ctx: RequestContext) -> dict[str, list[str]]:
        return await authz.store.list_all()

    async def secret_grant(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        require_category(ctx, data["role"], RoleCategory.PRIVILEGED)
        if not config.permission_grant_key:
            raise PermissionSecretNotAvailable()
        if not hmac.compare_digest(
            data["secret"].encode("utf-8"), config.permission_grant_key.encode("utf-8")
        ):
            emit_security_event(
                "authz.secretGrant.failure", ctx=ctx, principal_id=_principal_id(ctx)
            )
            raise PermissionSecretNotMatching()

        principal_id = _principal_id(ctx)
        await authz.grant(principal_id, data["role"])
        logger.warning("Privileged role %s granted to %s by secret", data["role"], principal_id)
        emit_security_event(
            "authz.secretGrant.success",
            ctx=ctx,
            principal_id=principal_id,
            details={"role": data["role"]},
        )
        return {"user": principal_id, "role": data["role"], "granted": True}

    managers = list(_MANAGERS)
    return {
        "/permission/grant": RouteConfig("post", grant, managers, ALL_STATES),
        "/permission/revoke": RouteConfig("post", revoke, managers, ALL_STATES),
        "/permission/list": RouteConfig(
            "get", list_roles, [DefaultRoles.AUTHENTICATED], ALL_STATES
        ),
        "/permission/listAll": RouteConfig("get", list_all, managers, ALL_STATES),
        "/permission/secretGrant": RouteConfig(
            "post", secret_grant, [DefaultRoles.AUTHENTICATED], ALL_STATES
        ),
    }
