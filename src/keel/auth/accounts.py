"""Account service: credentials, registration, and password flows.

Backs the library's ``/user/*`` use cases. Usernames are normalized
(lowercased and stripped) before every lookup. Any password change or
reset revokes all of the principal's refresh tokens.

Persistence and mail delivery are collaborators: ``UserStore`` and
``Mailer`` are protocols, with in-memory implementations for tests and
single-process use.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from keel.auth.passwords import hash_password, needs_rehash, verify_password
from keel.auth.session import Principal
from keel.errors import (
    AuthenticationFailure,
    KeelError,
    LoginFailed,
    MismatchingPasswords,
    RegistrationFailed,
    UserNotFound,
)
from keel.security.audit import emit_security_event

if TYPE_CHECKING:
    from keel.auth.engine import AuthenticationEngine
    from keel.context import RequestContext

logger = logging.getLogger("keel.auth")


def normalize_username(username: str) -> str:
    return username.lower().strip()


# ---------------------------------------------------------------------------
# Records and collaborators
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UserRecord:
    id: str
    username: str
    password_hash: str = field(repr=False)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    language: str | None = None
    reset_token: str | None = field(default=None, repr=False)

    def principal(self) -> Principal:
        return Principal(
            id=self.id,
            username=self.username,
            first_name=self.first_name,
            last_name=self.last_name,
        )

    def to_dict(self) -> dict[str, Any]:
        """Public view. Never includes the hash or reset token."""
        return {
            "id": self.id,
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "language": self.language,
        }


class UserExistsError(KeelError):
    """Raised by a ``UserStore`` when the username is already taken."""


@runtime_checkable
class UserStore(Protocol):
    async def find_by_username(self, username: str) -> UserRecord | None: ...

    async def insert(self, user: UserRecord) -> None: ...

    async def save(self, user: UserRecord) -> None: ...

    async def list_users(self) -> list[UserRecord]: ...


@runtime_checkable
class Mailer(Protocol):
    async def send(self, *, to: str, subject: str, body: str) -> None: ...


class InMemoryUserStore:
    """Lock-guarded dict of users keyed by normalized username."""

    __slots__ = ("_lock", "_users")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._users: dict[str, UserRecord] = {}

    async def find_by_username(self, username: str) -> UserRecord | None:
        with self._lock:
            return self._users.get(username)

    async def insert(self, user: UserRecord) -> None:
        with self._lock:
            if user.username in self._users:
                msg = f"Username {user.username!r} is already registered"
                raise UserExistsError(msg)
            self._users[user.username] = user

    async def save(self, user: UserRecord) -> None:
        with self._lock:
            self._users[user.username] = user

    async def list_users(self) -> list[UserRecord]:
        with self._lock:
            return sorted(self._users.values(), key=lambda u: u.username)


class OutboxMailer:
    """Collects messages in memory instead of sending them."""

    __slots__ = ("outbox",)

    def __init__(self) -> None:
        self.outbox: list[dict[str, str]] = []

    async def send(self, *, to: str, subject: str, body: str) -> None:
        self.outbox.append({"to": to, "subject": subject, "body": body})


RESET_SUBJECT = "Password reset"
RESET_BODY = (
    "We received a request to reset your password. If you did not ask for it, "
    "ignore this message.\n\n"
    "Open the link below to choose a new password. It is valid for a limited time.\n\n"
    "{host_uri}/resetPassword?token={token}\n"
)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AccountService:
    """Credential checks and password lifecycle on top of the auth engine."""

    __slots__ = ("_engine", "_mailer", "_users")

    def __init__(
        self,
        users: UserStore,
        engine: AuthenticationEngine,
        *,
        mailer: Mailer | None = None,
    ) -> None:
        self._users = users
        self._engine = engine
        self._mailer = mailer

    @property
    def users(self) -> UserStore:
        return self._users

    async def find(self, username: str) -> UserRecord:
        """Return the user or raise ``UserNotFound``."""
        user = await self._users.find_by_username(normalize_username(username))
        if user is None:
            raise UserNotFound(username)
        return user

    async def create_user(
        self,
        username: str,
        password: str,
        *,
        first_name: str = "",
        last_name: str = "",
        email: str | None = None,
        language: str | None = None,
    ) -> UserRecord:
        """Persist a new user without starting a session.

        Raises:
            RegistrationFailed: If the username is taken.
        """
        normalized = normalize_username(username)
        user = UserRecord(
            id=uuid.uuid4().hex,
            username=normalized,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            email=email or normalized,
            language=language,
        )
        try:
            await self._users.insert(user)
        except UserExistsError as exc:
            logger.info("Registration rejected: %s", exc)
            raise RegistrationFailed("userExists") from exc
        return user

    async def register(
        self,
        ctx: RequestContext,
        *,
        username: str,
        password: str,
        confirm_password: str,
        first_name: str,
        last_name: str,
        email: str | None = None,
        language: str | None = None,
    ) -> dict[str, Any]:
        if password != confirm_password:
            raise MismatchingPasswords()
        user = await self.create_user(
            username,
            password,
            first_name=first_name,
            last_name=last_name,
            email=email,
            language=language,
        )
        token = await self._engine.start_session(user.principal(), ctx)
        return {"token": token, "user": user.to_dict()}

    async def login(self, ctx: RequestContext, username: str, password: str) -> dict[str, Any]:
        """Verify credentials and start a session.

        Raises:
            LoginFailed: Unknown user or wrong password. Both report the
                same cause so usernames cannot be probed.
        """
        user = await self._users.find_by_username(normalize_username(username))
        if user is None or not verify_password(password, user.password_hash):
            emit_security_event(
                "auth.login.failure", ctx=ctx, details={"username": normalize_username(username)}
            )
            raise LoginFailed("invalidCredentials")

        if needs_rehash(user.password_hash):
            user = replace(user, password_hash=hash_password(password))
            await self._users.save(user)

        token = await self._engine.start_session(user.principal(), ctx)
        emit_security_event("auth.login.success", ctx=ctx, principal_id=user.id)
        return {"user": user.to_dict(), "token": token}

    async def change_password(
        self,
        ctx: RequestContext,
        *,
        current_password: str,
        password: str,
        confirm_password: str,
    ) -> dict[str, Any]:
        """Change the session user's password, purge refresh tokens, re-issue."""
        if password != confirm_password:
            raise MismatchingPasswords()
        session = ctx.session
        if session is None:
            raise AuthenticationFailure("missingHeader")
        user = await self.find(session.username)
        if not verify_password(current_password, user.password_hash):
            raise LoginFailed("invalidCurrentPassword")

        user = replace(user, password_hash=hash_password(password))
        await self._users.save(user)
        await self._engine.purge_principal(user.id)
        token = await self._engine.start_session(user.principal(), ctx)
        return {"user": user.to_dict(), "token": token}

    async def reset_password(self, username: str, host_uri: str) -> dict[str, str]:
        """Store a reset token, purge refresh tokens, and mail the link."""
        user = await self.find(username)
        tokens = self._engine.tokens
        reset_token = tokens.issue_access_token(user.username, ttl=tokens.config.reset_token_expiry)
        await self._users.save(replace(user, reset_token=reset_token))
        await self._engine.purge_principal(user.id)

        if self._mailer is None:
            logger.warning("No mailer configured; password reset link for %s not sent", user.id)
        else:
            await self._mailer.send(
                to=user.email or user.username,
                subject=RESET_SUBJECT,
                body=RESET_BODY.format(host_uri=host_uri.rstrip("/"), token=reset_token),
            )
        return {"status": "OK"}

    async def change_password_by_reset(
        self, token: str, password: str, confirm_password: str
    ) -> dict[str, str]:
        """Set a new password using a reset token. The token is single-use.

        Raises:
            MismatchingPasswords: Confirmation differs.
            AuthenticationFailure: Token invalid, expired, or already used.
        """
        if password != confirm_password:
            raise MismatchingPasswords()
        session = self._engine.tokens.verify_access_token(token)
        user = await self.find(session.username)
        if user.reset_token is None or user.reset_token != token:
            raise AuthenticationFailure("invalidToken", "Reset token is no longer valid.")

        await self._users.save(
            replace(user, password_hash=hash_password(password), reset_token=None)
        )
        await self._engine.purge_principal(user.id)
        return {"status": "OK"}

    async def set_password(self, username: str, password: str) -> dict[str, Any]:
        """Administrative password override."""
        user = await self.find(username)
        user = replace(user, password_hash=hash_password(password))
        await self._users.save(user)
        await self._engine.purge_principal(user.id)
        return {"user": user.to_dict(), "status": "OK"}
