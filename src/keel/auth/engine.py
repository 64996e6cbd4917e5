"""Authentication engine: refresh-token lifecycle and CSRF binding.

The engine owns the long-lived half of authentication:

- ``start_session`` issues refresh, CSRF, and access tokens after a
  login or registration.
- ``refresh`` exchanges a refresh cookie plus matching CSRF header for a
  new token set, rotating the stored record in place.
- ``logout`` deletes one record or every record of the principal.
- ``purge_principal`` is the global purge used by password changes.

The refresh token travels in an HTTP-only cookie signed with
``itsdangerous``. The CSRF token is returned in the ``X-Csrf-Token``
response header and must be echoed back on refresh.

Per token id a record moves ACTIVE -> ROTATED (overwritten in place) ->
REVOKED (deleted). A client still holding a superseded cookie gets
``RefreshTokenMismatch``.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from itsdangerous import BadSignature, Signer

from keel.auth.session import Principal
from keel.auth.stores import RefreshTokenRecord, RefreshTokenStore
from keel.auth.tokens import TokenService
from keel.errors import (
    ConfigurationError,
    InvalidCsrfToken,
    InvalidRefreshToken,
    MissingCsrfToken,
    RefreshFlowFailure,
    RefreshTokenMismatch,
)
from keel.http.cookies import SetCookie
from keel.security.audit import emit_security_event

if TYPE_CHECKING:
    from keel.context import RequestContext

logger = logging.getLogger("keel.auth")

_COOKIE_SALT = "keel.refresh-cookie"


@dataclass(frozen=True, slots=True)
class RefreshResult:
    token: str
    principal: dict[str, Any]


class AuthenticationEngine:
    """Issues, rotates, and revokes refresh credentials."""

    __slots__ = ("_config", "_signer", "_store", "_tokens")

    def __init__(self, tokens: TokenService, store: RefreshTokenStore) -> None:
        config = tokens.config
        if not config.cookie_key:
            msg = "AppConfig.cookie_key must not be empty."
            raise ConfigurationError(msg)
        self._config = config
        self._tokens = tokens
        self._store = store
        self._signer = Signer(config.cookie_key, salt=_COOKIE_SALT)

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    # -- Public operations --

    async def start_session(
        self, principal: Principal | Mapping[str, Any], ctx: RequestContext
    ) -> str:
        """Create a new refresh record and return a fresh access token."""
        claims = principal.to_claims() if isinstance(principal, Principal) else dict(principal)
        token = await self._issue(claims, ctx)
        logger.debug("Started session for principal %s", claims.get("id"))
        return token

    async def refresh(self, ctx: RequestContext) -> RefreshResult:
        """Exchange the refresh cookie and CSRF header for a new token set.

        Raises:
            InvalidRefreshToken: Cookie missing, tampered, expired, or not a JWT.
            MissingCsrfToken: No CSRF header on the request.
            RefreshTokenMismatch: Token id missing, record gone, or the
                stored token differs from the cookie.
            InvalidCsrfToken: The header does not match the stored CSRF token.
        """
        try:
            result = await self._refresh(ctx)
        except RefreshFlowFailure as exc:
            emit_security_event(
                "auth.refresh.failure", ctx=ctx, details={"reason": exc.code}
            )
            raise
        emit_security_event(
            "auth.refresh.success", ctx=ctx, principal_id=str(result.principal.get("id"))
        )
        return result

    async def logout(self, ctx: RequestContext, *, global_: bool = False) -> None:
        """Revoke the current refresh record, or all of the principal's records.

        The cookie is decoded without verification so an expired token can
        still log out. The refresh cookie is cleared on every outcome.

        Raises:
            InvalidRefreshToken: The cookie is missing or tampered.
        """
        ctx.clear_cookie(self._config.refresh_cookie_name, path=self._config.refresh_cookie_path)
        token = self._read_cookie(ctx)
        payload = self._tokens.decode_unverified(token)
        user = payload.get("user")
        principal_id = str(user.get("id")) if isinstance(user, Mapping) else None

        if global_:
            if principal_id is None:
                raise InvalidRefreshToken()
            removed = await self._store.delete_by_principal(principal_id)
        else:
            token_id = payload.get("tid")
            if not token_id:
                raise InvalidRefreshToken()
            removed = int(await self._store.delete_by_id(str(token_id)))

        logger.debug("Logout (global=%s) removed %d refresh record(s)", global_, removed)
        emit_security_event(
            "auth.logout",
            ctx=ctx,
            principal_id=principal_id,
            details={"global": global_, "removed": removed},
        )

    async def purge_principal(self, principal_id: str) -> int:
        """Delete every refresh record of *principal_id*."""
        removed = await self._store.delete_by_principal(principal_id)
        emit_security_event(
            "auth.credentials.purged", principal_id=principal_id, details={"removed": removed}
        )
        return removed

    # -- Internals --

    async def _refresh(self, ctx: RequestContext) -> RefreshResult:
        token = self._read_cookie(ctx)

        csrf = ctx.request.headers.first_of(*self._config.csrf_request_headers)
        if not csrf:
            raise MissingCsrfToken()

        payload = self._tokens.verify_refresh_token(token)
        token_id = payload.get("tid")
        if not token_id:
            raise RefreshTokenMismatch()

        record = await self._store.find_by_id(str(token_id))
        if record is None or record.token != token:
            raise RefreshTokenMismatch()

        if not record.csrf_token or not hmac.compare_digest(record.csrf_token, csrf):
            raise InvalidCsrfToken()

        access_token = await self._issue(record.principal, ctx, token_id=record.token_id)
        return RefreshResult(token=access_token, principal=dict(record.principal))

    async def _issue(
        self,
        claims: dict[str, Any],
        ctx: RequestContext,
        *,
        token_id: str | None = None,
    ) -> str:
        issued = self._tokens.issue_refresh_token(claims, token_id=token_id)
        csrf_token = secrets.token_hex(32)
        await self._store.upsert_by_id(
            RefreshTokenRecord(
                token_id=issued.token_id,
                token=issued.token,
                csrf_token=csrf_token,
                expires_at=issued.expires_at,
                principal=claims,
            )
        )
        ctx.set_cookie(self._refresh_cookie(issued.token))
        ctx.set_header(self._config.csrf_response_header, csrf_token)
        return self._tokens.issue_access_token(claims)

    def _read_cookie(self, ctx: RequestContext) -> str:
        raw = ctx.request.cookies.get(self._config.refresh_cookie_name)
        if not raw:
            raise InvalidRefreshToken()
        try:
            return self._signer.unsign(raw).decode("utf-8")
        except BadSignature:
            raise InvalidRefreshToken() from None

    def _refresh_cookie(self, token: str) -> SetCookie:
        cfg = self._config
        return SetCookie(
            name=cfg.refresh_cookie_name,
            value=self._signer.sign(token).decode("utf-8"),
            max_age=int(cfg.refresh_token_expiry),
            path=cfg.refresh_cookie_path,
            secure=cfg.cookie_secure,
            httponly=True,
            samesite=cfg.cookie_samesite,
        )
