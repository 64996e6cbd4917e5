"""Principal snapshots and verified sessions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated subject, as embedded in token claims."""

    id: str
    username: str
    first_name: str = ""
    last_name: str = ""

    def to_claims(self) -> dict[str, str]:
        return {
            "id": self.id,
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> Principal:
        return cls(
            id=str(claims["id"]),
            username=str(claims.get("username", "")),
            first_name=str(claims.get("firstName", "")),
            last_name=str(claims.get("lastName", "")),
        )


@dataclass(frozen=True, slots=True)
class Session:
    """Result of verifying an access token.

    ``user`` is the principal snapshot mapping for regular sessions, or a
    bare identity string for reset tokens.
    """

    id: str | None
    user: Mapping[str, Any] | str
    token_iat: int
    token_exp: int
    authenticated: bool = True

    @property
    def is_identity_only(self) -> bool:
        return isinstance(self.user, str)

    @property
    def principal_id(self) -> str:
        if self.id is not None:
            return self.id
        if isinstance(self.user, str):
            return self.user
        return str(self.user.get("id", ""))

    @property
    def username(self) -> str:
        if isinstance(self.user, str):
            return self.user
        return str(self.user.get("username", ""))

    @property
    def principal(self) -> Principal | None:
        if isinstance(self.user, str):
            return None
        return Principal.from_claims(self.user)
