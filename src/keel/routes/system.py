"""``/sys/*`` use cases: liveness and application-state scheduling."""

from datetime import UTC, datetime
from typing import Any

from keel.appstate.schedule import ScheduleEntry
from keel.appstate.states import ALL_STATES, AppState
from keel.context import RequestContext
from keel.roles import DefaultRoles
from keel.routes.services import Services
from keel.routing.route import RouteConfig


def sys_routes(services: Services) -> dict[str, RouteConfig]:
    gate = services.gate
    validator = services.validator

    async def ping(ctx: RequestContext) -> dict[str, str]:
        return {"status": "OK", "timestamp": datetime.now(UTC).isoformat()}

    async def get_app_state(ctx: RequestContext) -> dict[str, Any]:
        current = await gate.current_state()
        schedule = await gate.get_schedule()
        return {
            "current": current.to_dict(),
            "schedule": [entry.to_dict() for entry in schedule],
        }

    async def schedule_state_change(ctx: RequestContext) -> dict[str, Any]:
        data = validator.validate(ctx.input, ctx.uri.use_case)
        entry = ScheduleEntry(
            state=AppState(data["appState"]),
            effective_from=data["from"],
            reason=data.get("reason"),
        )
        schedule = await gate.schedule(entry)
        return {
            "scheduled": entry.to_dict(),
            "schedule": [item.to_dict() for item in schedule],
        }

    return {
        "/sys/ping": RouteConfig("get", ping, [DefaultRoles.PUBLIC], ALL_STATES),
        "/sys/getAppState": RouteConfig(
            "get", get_app_state, [DefaultRoles.AUTHENTICATED], ALL_STATES
        ),
        "/sys/scheduleStateChange": RouteConfig(
            "post", schedule_state_change, [DefaultRoles.ADMIN], ALL_STATES
        ),
    }
