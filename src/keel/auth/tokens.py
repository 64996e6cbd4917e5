"""Access and refresh token signing with PyJWT.

Access tokens are short-lived and travel in the ``Authorization`` header.
Their payload is ``{id, user, iat, exp}``, or ``{user, iat, exp}`` with a
bare identity string for password-reset tokens.

Refresh tokens are long-lived, signed with a separate key, and carry a
random token id: ``{tid, jti, user, iat, exp}``. The id is the primary key
of the server-side record that binds the token to its CSRF value; ``jti``
is fresh on every issue so a rotated token never equals its predecessor.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, TypeAlias

import jwt

from keel.auth.session import Principal, Session
from keel.config import AppConfig, parse_duration
from keel.errors import AuthenticationFailure, InvalidRefreshToken

PrincipalLike: TypeAlias = Principal | Mapping[str, Any]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _claims(principal: PrincipalLike) -> dict[str, Any]:
    if isinstance(principal, Principal):
        return principal.to_claims()
    if "id" not in principal:
        msg = "Principal claims must include an 'id'"
        raise ValueError(msg)
    return dict(principal)


def new_token_id() -> str:
    """A fresh, unguessable refresh-token id."""
    return secrets.token_hex(16)


@dataclass(frozen=True, slots=True)
class IssuedRefreshToken:
    token: str
    token_id: str
    expires_at: datetime


class TokenService:
    """Issues and verifies access and refresh tokens.

    ``clock`` returns an aware UTC datetime and controls ``iat``/``exp``.
    Verification always checks expiry against the real current time.
    """

    __slots__ = ("_clock", "_config")

    def __init__(
        self,
        config: AppConfig,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._clock = clock

    @property
    def config(self) -> AppConfig:
        return self._config

    # -- Access tokens --

    def issue_access_token(
        self,
        principal: PrincipalLike | str,
        ttl: float | str | None = None,
    ) -> str:
        """Sign an access token.

        A bare string principal produces an identity-only token (used for
        password reset links). *ttl* overrides the configured session expiry.
        """
        if isinstance(principal, str):
            payload: dict[str, Any] = {"user": principal}
        else:
            claims = _claims(principal)
            payload = {"id": str(claims["id"]), "user": claims}
        lifetime = self._config.session_expiry if ttl is None else parse_duration(ttl)
        now = self._clock()
        payload["iat"] = int(now.timestamp())
        payload["exp"] = int((now + timedelta(seconds=lifetime)).timestamp())
        return jwt.encode(payload, self._config.jwt_key, algorithm=self._config.jwt_algorithm)

    def verify_access_token(self, token: str) -> Session:
        """Verify signature and expiry, returning the session.

        Raises:
            AuthenticationFailure: ``tokenExpired``, ``invalidSignature``, or
                ``invalidToken`` for anything else malformed.
        """
        try:
            payload = jwt.decode(
                token,
                self._config.jwt_key,
                algorithms=[self._config.jwt_algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationFailure("tokenExpired", "Access token has expired.") from None
        except jwt.InvalidSignatureError:
            raise AuthenticationFailure(
                "invalidSignature", "Access token signature is invalid."
            ) from None
        except jwt.InvalidTokenError:
            raise AuthenticationFailure("invalidToken", "Access token is malformed.") from None

        user = payload.get("user")
        if not isinstance(user, str | dict):
            raise AuthenticationFailure("invalidToken", "Access token carries no user.")
        token_id = payload.get("id")
        return Session(
            id=str(token_id) if token_id is not None else None,
            user=user,
            token_iat=int(payload["iat"]),
            token_exp=int(payload["exp"]),
        )

    # -- Refresh tokens --

    def issue_refresh_token(
        self,
        principal: PrincipalLike,
        *,
        token_id: str | None = None,
    ) -> IssuedRefreshToken:
        """Sign a refresh token.

        A fresh token id is generated unless *token_id* is given, which
        is how rotation keeps the record's primary key stable.
        """
        token_id = token_id or new_token_id()
        now = self._clock()
        expires_at = now + timedelta(seconds=self._config.refresh_token_expiry)
        payload = {
            "tid": token_id,
            "jti": secrets.token_hex(8),
            "user": _claims(principal),
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(
            payload, self._config.refresh_token_key, algorithm=self._config.jwt_algorithm
        )
        return IssuedRefreshToken(token=token, token_id=token_id, expires_at=expires_at)

    def verify_refresh_token(self, token: str) -> dict[str, Any]:
        """Verify a refresh token and return its payload.

        Raises:
            InvalidRefreshToken: On a bad signature, expiry, or malformed token.
        """
        try:
            return jwt.decode(
                token,
                self._config.refresh_token_key,
                algorithms=[self._config.jwt_algorithm],
            )
        except jwt.InvalidTokenError:
            raise InvalidRefreshToken() from None

    @staticmethod
    def decode_unverified(token: str) -> dict[str, Any]:
        """Read a token's payload without checking signature or expiry.

        Used by logout, which must work with an expired refresh token.
        Raises ``InvalidRefreshToken`` if the token is not a JWT at all.
        """
        try:
            return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
        except jwt.InvalidTokenError:
            raise InvalidRefreshToken() from None
