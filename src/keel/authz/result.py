"""Authorization decision record."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class AuthorizationDecision:
    """Outcome of ``AuthorizationEngine.authorize``.

    Always produced, whether or not access is granted, so handlers and
    error bodies can report which roles were compared.
    """

    principal_id: str
    use_case: str
    use_case_roles: tuple[str, ...]
    user_roles: tuple[str, ...]
    authorized: bool

    def __bool__(self) -> bool:
        return self.authorized

    def to_dict(self) -> dict[str, Any]:
        return {
            "authorized": self.authorized,
            "principalId": self.principal_id,
            "useCase": self.use_case,
            "useCaseRoles": list(self.use_case_roles),
            "userRoles": list(self.user_roles),
        }
