"""Tests for keel.auth.engine.AuthenticationEngine: rotation, CSRF, logout."""

import pytest
from conftest import make_context, past_clock
from itsdangerous import Signer

from keel.auth.engine import AuthenticationEngine
from keel.auth.session import Principal
from keel.auth.stores import InMemoryRefreshTokenStore
from keel.auth.tokens import TokenService
from keel.config import AppConfig
from keel.context import RequestContext
from keel.errors import (
    ConfigurationError,
    InvalidCsrfToken,
    InvalidRefreshToken,
    MissingCsrfToken,
    RefreshTokenMismatch,
)
from keel.http.response import Response
from keel.security.audit import SecurityEvent, set_security_event_sink

ADA = Principal(id="p1", username="ada@example.com")


@pytest.fixture
def store() -> InMemoryRefreshTokenStore:
    return InMemoryRefreshTokenStore()


@pytest.fixture
def engine(config: AppConfig, store: InMemoryRefreshTokenStore) -> AuthenticationEngine:
    return AuthenticationEngine(TokenService(config), store)


async def start(engine: AuthenticationEngine, principal: Principal = ADA) -> tuple[str, str, str]:
    """Log in and return (access token, refresh cookie value, csrf token)."""
    ctx = make_context("POST", "/user/login")
    token = await engine.start_session(principal, ctx)
    response = ctx.apply(Response())
    return token, response.cookie("refreshToken").value, response.header("X-Csrf-Token")


def unsign_cookie(engine: AuthenticationEngine, cookie: str) -> str:
    signer = Signer(engine.tokens.config.cookie_key, salt="keel.refresh-cookie")
    return signer.unsign(cookie).decode()


def refresh_ctx(cookie: str | None, csrf: str | None, header: str = "X-Csrf-Token") -> RequestContext:
    return make_context(
        "POST",
        "/user/refreshToken",
        cookies={"refreshToken": cookie} if cookie is not None else None,
        headers={header: csrf} if csrf is not None else None,
    )


class TestStartSession:
    async def test_issues_cookie_header_and_record(
        self, engine: AuthenticationEngine, store: InMemoryRefreshTokenStore
    ) -> None:
        ctx = make_context("POST", "/user/login")
        token = await engine.start_session(ADA, ctx)
        response = ctx.apply(Response())

        assert engine.tokens.verify_access_token(token).principal_id == "p1"
        cookie = response.cookie("refreshToken")
        assert cookie.httponly
        assert cookie.path == "/user"
        assert cookie.max_age == 30 * 86400
        assert len(response.header("X-Csrf-Token")) == 64
        assert len(store) == 1

    async def test_each_login_gets_its_own_record(
        self, engine: AuthenticationEngine, store: InMemoryRefreshTokenStore
    ) -> None:
        await start(engine)
        await start(engine)
        assert len(store) == 2

    def test_requires_cookie_key(self, config: AppConfig) -> None:
        with pytest.raises(ConfigurationError):
            AuthenticationEngine(
                TokenService(config.with_overrides(cookie_key="")), InMemoryRefreshTokenStore()
            )


class TestRefresh:
    async def test_rotates_in_place(
        self, engine: AuthenticationEngine, store: InMemoryRefreshTokenStore
    ) -> None:
        _, cookie, csrf = await start(engine)
        ctx = refresh_ctx(cookie, csrf)
        result = await engine.refresh(ctx)
        response = ctx.apply(Response())

        assert result.principal["id"] == "p1"
        assert engine.tokens.verify_access_token(result.token).principal_id == "p1"
        new_cookie = response.cookie("refreshToken").value
        new_csrf = response.header("X-Csrf-Token")
        assert new_cookie != cookie
        assert new_csrf != csrf
        assert len(store) == 1

        # The rotated token keeps the record's id
        old_tid = engine.tokens.decode_unverified(unsign_cookie(engine, cookie))["tid"]
        new_tid = engine.tokens.decode_unverified(unsign_cookie(engine, new_cookie))["tid"]
        assert old_tid == new_tid

    async def test_superseded_cookie_is_rejected(self, engine: AuthenticationEngine) -> None:
        _, cookie, csrf = await start(engine)
        await engine.refresh(refresh_ctx(cookie, csrf))
        with pytest.raises(RefreshTokenMismatch):
            await engine.refresh(refresh_ctx(cookie, csrf))

    async def test_accepts_xsrf_header(self, engine: AuthenticationEngine) -> None:
        _, cookie, csrf = await start(engine)
        result = await engine.refresh(refresh_ctx(cookie, csrf, header="X-Xsrf-Token"))
        assert result.token

    async def test_missing_cookie(self, engine: AuthenticationEngine) -> None:
        with pytest.raises(InvalidRefreshToken):
            await engine.refresh(refresh_ctx(None, "csrf"))

    async def test_tampered_cookie(self, engine: AuthenticationEngine) -> None:
        _, cookie, csrf = await start(engine)
        with pytest.raises(InvalidRefreshToken):
            await engine.refresh(refresh_ctx(cookie + "x", csrf))

    async def test_missing_csrf(self, engine: AuthenticationEngine) -> None:
        _, cookie, _ = await start(engine)
        with pytest.raises(MissingCsrfToken):
            await engine.refresh(refresh_ctx(cookie, None))

    async def test_wrong_csrf(self, engine: AuthenticationEngine) -> None:
        _, cookie, _ = await start(engine)
        with pytest.raises(InvalidCsrfToken):
            await engine.refresh(refresh_ctx(cookie, "0" * 64))

    async def test_csrf_from_another_session(self, engine: AuthenticationEngine) -> None:
        _, cookie, _ = await start(engine)
        _, _, other_csrf = await start(engine)
        with pytest.raises(InvalidCsrfToken):
            await engine.refresh(refresh_ctx(cookie, other_csrf))

    async def test_unpersisted_token_id(self, engine: AuthenticationEngine, config: AppConfig) -> None:
        issued = engine.tokens.issue_refresh_token(ADA)
        cookie = Signer(config.cookie_key, salt="keel.refresh-cookie").sign(issued.token).decode()
        with pytest.raises(RefreshTokenMismatch):
            await engine.refresh(refresh_ctx(cookie, "anything"))

    async def test_deleted_record(
        self, engine: AuthenticationEngine, store: InMemoryRefreshTokenStore
    ) -> None:
        _, cookie, csrf = await start(engine)
        await store.delete_by_principal("p1")
        with pytest.raises(RefreshTokenMismatch):
            await engine.refresh(refresh_ctx(cookie, csrf))

    async def test_expired_refresh_token(
        self, config: AppConfig, store: InMemoryRefreshTokenStore
    ) -> None:
        clock = past_clock()
        old_engine = AuthenticationEngine(TokenService(config, clock=clock), store)
        _, cookie, csrf = await start(old_engine)
        engine = AuthenticationEngine(TokenService(config), store)
        with pytest.raises(InvalidRefreshToken):
            await engine.refresh(refresh_ctx(cookie, csrf))

    async def test_emits_audit_events(self, engine: AuthenticationEngine) -> None:
        events: list[SecurityEvent] = []
        set_security_event_sink(events.append)
        try:
            _, cookie, csrf = await start(engine)
            await engine.refresh(refresh_ctx(cookie, csrf))
            with pytest.raises(RefreshTokenMismatch):
                await engine.refresh(refresh_ctx(cookie, csrf))
        finally:
            set_security_event_sink(None)
        names = [e.name for e in events]
        assert names == ["auth.refresh.success", "auth.refresh.failure"]
        assert events[0].principal_id == "p1"
        assert events[1].details["reason"] == "keel/refreshTokenMismatch"


class TestLogout:
    async def test_single_device(
        self, engine: AuthenticationEngine, store: InMemoryRefreshTokenStore
    ) -> None:
        _, cookie_a, csrf_a = await start(engine)
        _, cookie_b, csrf_b = await start(engine)

        ctx = refresh_ctx(cookie_a, None)
        await engine.logout(ctx)
        assert ctx.apply(Response()).cookie("refreshToken").expired
        assert len(store) == 1

        with pytest.raises(RefreshTokenMismatch):
            await engine.refresh(refresh_ctx(cookie_a, csrf_a))
        assert (await engine.refresh(refresh_ctx(cookie_b, csrf_b))).token

    async def test_global(
        self, engine: AuthenticationEngine, store: InMemoryRefreshTokenStore
    ) -> None:
        _, cookie_a, csrf_a = await start(engine)
        _, cookie_b, csrf_b = await start(engine)
        await start(engine, Principal(id="p2", username="bob@example.com"))

        await engine.logout(refresh_ctx(cookie_a, None), global_=True)
        assert len(store) == 1
        for cookie, csrf in ((cookie_a, csrf_a), (cookie_b, csrf_b)):
            with pytest.raises(RefreshTokenMismatch):
                await engine.refresh(refresh_ctx(cookie, csrf))

    async def test_missing_cookie_still_clears(self, engine: AuthenticationEngine) -> None:
        ctx = refresh_ctx(None, None)
        with pytest.raises(InvalidRefreshToken):
            await engine.logout(ctx)
        assert ctx.apply(Response()).cookie("refreshToken").expired

    async def test_expired_token_can_log_out(
        self, config: AppConfig, store: InMemoryRefreshTokenStore
    ) -> None:
        clock = past_clock()
        _, cookie, _ = await start(AuthenticationEngine(TokenService(config, clock=clock), store))
        await AuthenticationEngine(TokenService(config), store).logout(refresh_ctx(cookie, None))
        assert len(store) == 0


class TestPurge:
    async def test_purge_principal(
        self, engine: AuthenticationEngine, store: InMemoryRefreshTokenStore
    ) -> None:
        await start(engine)
        await start(engine)
        await start(engine, Principal(id="p2", username="bob@example.com"))
        assert await engine.purge_principal("p1") == 2
        assert len(store) == 1
