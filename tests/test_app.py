"""End-to-end tests for keel.app.App through the ASGI test client."""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from conftest import GRANT_KEY, KEYS

from keel import App, AppConfig, TestClient
from keel.appstate import ALL_STATES, AppState, ScheduleEntry
from keel.auth.accounts import OutboxMailer
from keel.errors import ConfigurationError
from keel.middleware import PreMiddleware
from keel.routing import RouteConfig
from keel.validation import required, string


def make_app(**overrides: Any) -> App:
    settings: dict[str, Any] = {**KEYS, "permission_grant_key": GRANT_KEY}
    settings.update(overrides)
    return App(AppConfig(**settings), mailer=OutboxMailer())


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def just_now() -> str:
    return (datetime.now(UTC) - timedelta(seconds=1)).isoformat()


async def activate(app: App) -> None:
    await app.services.gate.schedule(
        ScheduleEntry(AppState.ACTIVE, datetime.now(UTC) - timedelta(seconds=1), "test")
    )


async def login(client: TestClient, username: str = "ada", password: str = "correct-horse") -> str:
    response = await client.post(
        "/user/login", json={"username": username, "password": password}
    )
    assert response.status == 200, response.text
    return response.json()["token"]


# ---------------------------------------------------------------------------
# Setup and freezing
# ---------------------------------------------------------------------------


class TestAppSetup:
    def test_missing_secrets_fail_at_freeze(self) -> None:
        app = App(AppConfig())
        with pytest.raises(ConfigurationError):
            app._ensure_frozen()

    def test_route_without_roles_fails_at_freeze(self) -> None:
        app = make_app()

        @app.route("/report/list", roles=[])
        def reports(ctx: Any) -> list[str]:
            return []

        with pytest.raises(ConfigurationError, match="/report/list"):
            app._ensure_frozen()

    def test_registration_closed_after_freeze(self) -> None:
        app = make_app()
        app._ensure_frozen()
        with pytest.raises(RuntimeError):
            app.register("/late", RouteConfig("get", lambda ctx: None, ["Public"]))
        with pytest.raises(RuntimeError):
            app.add_role("Late")

    def test_default_use_cases_registered(self) -> None:
        registry = make_app().registry
        for path in ("/user/login", "/permission/secretGrant", "/sys/ping"):
            assert path in registry

    def test_conflicting_middleware_order(self) -> None:
        app = make_app()

        async def audit(ctx: Any) -> None:
            return None

        app.add_middleware(audit, order=-400, name="audit")
        with pytest.raises(ConfigurationError, match="authentication"):
            app._ensure_frozen()

    def test_override_replaces_default(self) -> None:
        app = make_app()

        @app.route("/sys/ping", roles=["Public"], app_states=ALL_STATES)
        def ping(ctx: Any) -> dict[str, str]:
            return {"status": "custom"}

        assert app.registry.lookup("/sys/ping").handler is ping


# ---------------------------------------------------------------------------
# Public use cases and error bodies
# ---------------------------------------------------------------------------


class TestErrorResponses:
    async def test_ping_is_public(self) -> None:
        async with TestClient(make_app()) as client:
            response = await client.get("/sys/ping")
        assert response.status == 200
        assert response.json()["status"] == "OK"

    async def test_unknown_use_case(self) -> None:
        async with TestClient(make_app()) as client:
            response = await client.get("/nope", headers={"X-Cloud-Trace-Context": "abc/1"})
        body = response.json()
        assert response.status == 404
        assert body["code"] == "keel/handlerNotFound"
        assert body["status"] == 404
        assert body["uri"] == "http://testserver/nope"
        assert body["params"] == {"useCase": "/nope"}
        assert body["traceId"] == "abc/1"
        assert "timestamp" in body
        assert "HandlerNotFound" in body["trace"]

    async def test_wrong_method(self) -> None:
        async with TestClient(make_app()) as client:
            response = await client.get("/user/login")
        assert response.status == 405
        assert response.json()["params"]["allowedMethod"] == "post"

    async def test_production_hides_trace(self) -> None:
        async with TestClient(make_app(environment="production")) as client:
            response = await client.get("/nope")
        assert "trace" not in response.json()

    async def test_unexpected_exception_is_500(self) -> None:
        app = make_app()

        @app.route("/boom", roles=["Public"], app_states=ALL_STATES)
        def boom(ctx: Any) -> None:
            raise RuntimeError("kaput")

        async with TestClient(app) as client:
            response = await client.get("/boom")
        body = response.json()
        assert response.status == 500
        assert body["code"] == "keel/internalError"
        assert "kaput" in body["trace"]

    async def test_malformed_json(self) -> None:
        async with TestClient(make_app()) as client:
            response = await client.post(
                "/user/login", body=b"{nope", headers={"content-type": "application/json"}
            )
        assert response.status == 400
        assert response.json()["code"] == "keel/validationFailure"

    async def test_missing_fields(self) -> None:
        async with TestClient(make_app()) as client:
            response = await client.post("/user/login", json={"username": "ada"})
        body = response.json()
        assert response.status == 400
        assert body["params"]["schemaId"] == "UserLoginSchema"
        assert "password" in body["params"]["errors"]

    @pytest.mark.parametrize(
        ("headers", "cause"),
        [({}, "missingHeader"), ({"Authorization": "Basic abc"}, "invalidScheme")],
    )
    async def test_unauthenticated(self, headers: dict[str, str], cause: str) -> None:
        async with TestClient(make_app()) as client:
            response = await client.get("/sys/getAppState", headers=headers)
        assert response.status == 401
        assert response.json()["params"]["cause"] == cause

    async def test_forged_token(self) -> None:
        async with TestClient(make_app()) as client:
            response = await client.get("/sys/getAppState", headers=bearer("a.b.c"))
        assert response.status == 401

    async def test_reset_token_is_not_a_session(self) -> None:
        app = make_app()
        async with TestClient(app) as client:
            reset_token = app.services.tokens.issue_access_token("ada")
            response = await client.get("/sys/getAppState", headers=bearer(reset_token))
        assert response.status == 401
        assert response.json()["params"]["cause"] == "invalidToken"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class TestSessionFlow:
    async def test_login_refresh_logout(self) -> None:
        app = make_app()
        async with TestClient(app) as client:
            await app.services.accounts.create_user("ada", "correct-horse")

            response = await client.post(
                "/user/login", json={"username": "ADA", "password": "correct-horse"}
            )
            assert response.status == 200
            token = response.json()["token"]
            csrf = response.header("X-Csrf-Token")
            cookie = response.cookie("refreshToken")
            assert csrf
            assert cookie.httponly
            assert cookie.path == "/user"
            assert "refreshToken" in client.cookies

            response = await client.post("/user/refreshToken", headers={"X-Csrf-Token": csrf})
            assert response.status == 200
            assert response.json()["user"]["username"] == "ada"
            new_csrf = response.header("X-Csrf-Token")
            assert new_csrf != csrf

            # the superseded CSRF token no longer matches
            response = await client.post("/user/refreshToken", headers={"X-Csrf-Token": csrf})
            assert response.status == 401
            assert response.json()["code"] == "keel/invalidCsrfToken"

            response = await client.post("/user/logout", headers=bearer(token), json={})
            assert response.status == 200
            assert response.json() == {"status": "OK", "global": False}
            assert "refreshToken" not in client.cookies

            response = await client.post(
                "/user/refreshToken", headers={"X-Csrf-Token": new_csrf}
            )
            assert response.status == 401
            assert response.json()["code"] == "keel/invalidRefreshToken"

    async def test_wrong_password(self) -> None:
        app = make_app()
        async with TestClient(app) as client:
            await app.services.accounts.create_user("ada", "correct-horse")
            response = await client.post(
                "/user/login", json={"username": "ada", "password": "wrong-one"}
            )
        assert response.status == 401
        assert response.json()["params"] == {"cause": "invalidCredentials"}

    async def test_logout_without_cookie_still_clears(self) -> None:
        app = make_app()
        async with TestClient(app) as client:
            await app.services.accounts.create_user("ada", "correct-horse")
            token = await login(client)
            client.cookies.clear()
            response = await client.post("/user/logout", headers=bearer(token), json={})
        assert response.status == 401
        assert response.cookie("refreshToken").expired


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


class TestAppStateGate:
    async def test_active_only_route_blocked_until_scheduled(self) -> None:
        app = make_app()
        payload = {
            "username": "ada",
            "password": "correct-horse",
            "confirmPassword": "correct-horse",
            "firstName": "Ada",
            "lastName": "Lovelace",
        }
        async with TestClient(app) as client:
            response = await client.post("/user/register", json=payload)
            assert response.status == 503
            params = response.json()["params"]
            assert params["deniedState"]["appState"] == "initial"
            assert params["allowedStates"] == ["active"]

            await activate(app)
            response = await client.post("/user/register", json=payload)
            assert response.status == 200
            assert response.json()["user"]["username"] == "ada"

    async def test_maintenance_route(self) -> None:
        app = make_app()

        @app.route(
            "/maintenance/run",
            method="post",
            roles=["Authenticated"],
            app_states=[AppState.IN_MAINTENANCE],
        )
        def run(ctx: Any) -> dict[str, Any]:
            return {"ran": True, "state": ctx.app_state_info["appState"]}

        async with TestClient(app) as client:
            await app.services.accounts.create_user("ada", "correct-horse")
            token = await login(client)
            await activate(app)

            response = await client.post("/maintenance/run", headers=bearer(token))
            assert response.status == 503
            assert response.json()["params"]["deniedState"]["appState"] == "active"

            await app.services.gate.schedule(
                ScheduleEntry(AppState.IN_MAINTENANCE, datetime.now(UTC), "upgrade")
            )
            response = await client.post("/maintenance/run", headers=bearer(token))
            assert response.status == 200
            assert response.json() == {"ran": True, "state": "inMaintenance"}

    async def test_skip_flag(self) -> None:
        app = make_app(skip_app_state_check=True)

        @app.route("/report/list", roles=["Public"])
        def reports(ctx: Any) -> dict[str, Any]:
            return dict(ctx.app_state_info)

        async with TestClient(app) as client:
            response = await client.get("/report/list")
        assert response.status == 200
        assert response.json()["checkSkipped"] is True


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class TestPermissions:
    async def test_admin_bootstrap_and_management(self) -> None:
        app = make_app()
        app.add_role("Technician")
        async with TestClient(app) as client:
            ada = await app.services.accounts.create_user("ada", "correct-horse")
            bob = await app.services.accounts.create_user("bob", "battery-staple")
            token = await login(client)

            response = await client.get("/permission/listAll", headers=bearer(token))
            assert response.status == 403
            assert response.json()["params"]["userRoles"] == []

            response = await client.post(
                "/permission/secretGrant",
                headers=bearer(token),
                json={"role": "Admin", "secret": "guess"},
            )
            assert response.status == 403
            assert response.json()["code"] == "keel/permissionSecretNotMatching"

            response = await client.post(
                "/permission/secretGrant",
                headers=bearer(token),
                json={"role": "Admin", "secret": GRANT_KEY},
            )
            assert response.status == 200

            response = await client.post(
                "/permission/grant",
                headers=bearer(token),
                json={"user": bob.id, "role": "Technician"},
            )
            assert response.status == 200
            response = await client.get(
                "/permission/list", headers=bearer(token), query={"user": bob.id}
            )
            assert response.json() == {"user": bob.id, "roles": ["Technician"]}

            response = await client.post(
                "/permission/grant",
                headers=bearer(token),
                json={"user": bob.id, "role": "Admin"},
            )
            assert response.status == 400

            response = await client.get("/permission/listAll", headers=bearer(token))
            assert response.json() == {ada.id: ["Admin"], bob.id: ["Technician"]}

            response = await client.post(
                "/sys/scheduleStateChange",
                headers=bearer(token),
                json={"appState": "active", "from": just_now(), "reason": "launch"},
            )
            assert response.status == 200
            response = await client.get("/user/list", headers=bearer(token))
            assert response.status == 200
            assert [u["username"] for u in response.json()] == ["ada", "bob"]

            bob_token = await login(client, "bob", "battery-staple")
            response = await client.get(
                "/permission/list", headers=bearer(bob_token), query={"user": ada.id}
            )
            assert response.status == 403
            assert response.json()["code"] == "keel/cannotLoadRoles"

            response = await client.post(
                "/permission/revoke", headers=bearer(token), json={"user": bob.id, "all": True}
            )
            assert response.json()["role"] == "all"

    async def test_secret_grant_unavailable(self) -> None:
        app = make_app(permission_grant_key="")
        async with TestClient(app) as client:
            await app.services.accounts.create_user("ada", "correct-horse")
            token = await login(client)
            response = await client.post(
                "/permission/secretGrant",
                headers=bearer(token),
                json={"role": "Admin", "secret": "anything"},
            )
        assert response.status == 500
        assert response.json()["code"] == "keel/permissionSecretNotAvailable"


# ---------------------------------------------------------------------------
# Application middleware and schemas
# ---------------------------------------------------------------------------


class TestExtension:
    async def test_custom_middleware_runs_in_order(self) -> None:
        app = make_app()
        seen: list[str] = []

        async def after_auth(ctx: Any) -> None:
            seen.append(f"session={ctx.session is not None}")

        app.add_middleware(PreMiddleware(-350, after_auth, "afterAuth"))

        @app.route("/sys/whoami", roles=["Authenticated"], app_states=ALL_STATES)
        def whoami(ctx: Any) -> dict[str, str]:
            return {"id": ctx.session.principal_id}

        async with TestClient(app) as client:
            user = await app.services.accounts.create_user("ada", "correct-horse")
            token = await login(client)
            response = await client.get("/sys/whoami", headers=bearer(token))
        assert response.json() == {"id": user.id}
        assert seen == ["session=False", "session=True"]

    async def test_custom_schema(self) -> None:
        app = make_app()
        app.add_schema("NoteCreateSchema", {"text": [required, string]})

        @app.route("/note/create", method="post", roles=["Public"], app_states=ALL_STATES)
        def create(ctx: Any) -> dict[str, Any]:
            return app.services.validator.validate(ctx.input, ctx.uri.use_case)

        async with TestClient(app) as client:
            ok = await client.post("/note/create", json={"text": "hi", "junk": 1})
            bad = await client.post("/note/create", json={})
        assert ok.json() == {"text": "hi"}
        assert bad.status == 400
