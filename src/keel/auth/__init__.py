"""Authentication: token signing, refresh rotation, accounts."""

from keel.auth.accounts import (
    AccountService,
    InMemoryUserStore,
    Mailer,
    OutboxMailer,
    UserExistsError,
    UserRecord,
    UserStore,
    normalize_username,
)
from keel.auth.engine import AuthenticationEngine, RefreshResult
from keel.auth.session import Principal, Session
from keel.auth.stores import InMemoryRefreshTokenStore, RefreshTokenRecord, RefreshTokenStore
from keel.auth.tokens import IssuedRefreshToken, TokenService

__all__ = [
    "AccountService",
    "AuthenticationEngine",
    "InMemoryRefreshTokenStore",
    "InMemoryUserStore",
    "IssuedRefreshToken",
    "Mailer",
    "OutboxMailer",
    "Principal",
    "RefreshResult",
    "RefreshTokenRecord",
    "RefreshTokenStore",
    "Session",
    "TokenService",
    "UserExistsError",
    "UserRecord",
    "UserStore",
    "normalize_username",
]
