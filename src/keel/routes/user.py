"""``/user/*`` use cases: registration, login, token refresh, passwords."""

from typing import Any

from keel.appstate.states import ALL_STATES
from keel.context import RequestContext
from keel.roles import DefaultRoles
from keel.routes.services import Services
from keel.routing.route import RouteConfig


def _flag(value: Any) -> bool:
    return value is True or value == "true"


def user_routes(services: Services) -> dict[str, RouteConfig]:
    accounts = services.accounts
    engine = services.authentication
    validator = services.validator

    async def register(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        return await accounts.register(
            ctx,
            username=data["username"],
            password=data["password"],
            confirm_password=data["confirmPassword"],
            first_name=data["firstName"],
            last_name=data["lastName"],
            email=data.get("email"),
            language=data.get("language"),
        )

    async def login(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        return await accounts.login(ctx, data["username"], data["password"])

    async def refresh_token(ctx: RequestContext) -> dict[str, Any]:
        result = await engine.refresh(ctx)
        return {"token": result.token, "user": result.principal}

    async def logout(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        global_ = _flag(data.get("global"))
        await engine.logout(ctx, global_=global_)
        return {"status": "OK", "global": global_}

    async def change_password(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        return await accounts.change_password(
            ctx,
            current_password=data["currentPassword"],
            password=data["password"],
            confirm_password=data["confirmPassword"],
        )

    async def reset_password(ctx: RequestContext) -> dict[str, str]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        return await accounts.reset_password(data["username"], ctx.uri.base_uri)

    async def change_password_by_reset(ctx: RequestContext) -> dict[str, str]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        return await accounts.change_password_by_reset(
            data["token"], data["password"], data["confirmPassword"]
        )

    async def list_users(ctx: RequestContext) -> list[dict[str, Any]]:
        return [user.to_dict() for user in await accounts.users.list_users()]

    async def get_user(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        return (await accounts.find(data["username"])).to_dict()

    async def set_password(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        return await accounts.set_password(data["username"], data["password"])

    public = [DefaultRoles.PUBLIC]
    managers = [DefaultRoles.ADMIN, DefaultRoles.AUTHORITY]
    return {
        "/user/register": RouteConfig("post", register, public),
        "/user/login": RouteConfig("post", login, public, ALL_STATES),
        "/user/refreshToken": RouteConfig("post", refresh_token, public, ALL_STATES),
        "/user/logout": RouteConfig("post", logout, [DefaultRoles.AUTHENTICATED], ALL_STATES),
        "/user/changePassword": RouteConfig(
            "post", change_password, [DefaultRoles.AUTHENTICATED]
        ),
        "/user/resetPassword": RouteConfig("post", reset_password, public),
        "/user/changePasswordByReset": RouteConfig("post", change_password_by_reset, public),
        "/user/list": RouteConfig("get", list_users, managers),
        "/user/get": RouteConfig("get", get_user, managers),
        "/user/setPassword": RouteConfig("post", set_password, [DefaultRoles.ADMIN]),
    }
