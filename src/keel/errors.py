"""Keel exception hierarchy.

Shared across the registry, pipeline, engines, and default use cases so
every module raises and catches the same types.

Two families:

- ``ConfigurationError`` is raised while the app is being assembled
  (route registration, middleware ordering, missing role config) and is
  never converted into an HTTP response.
- ``UseCaseError`` subclasses carry ``message``, ``params`` and an HTTP
  ``status``. The error middleware renders them as the JSON error body.
"""

from collections.abc import Mapping
from typing import Any


def _lower_camel(name: str) -> str:
    return name[:1].lower() + name[1:]


class KeelError(Exception):
    """Base for all keel-specific errors."""


class ConfigurationError(KeelError):
    """Raised when app configuration is invalid.

    Typically raised during ``App._freeze()`` or pipeline assembly at
    startup. Authorization raises it at request time when a use case has
    no role configuration.
    """


class UseCaseError(KeelError):
    """An error that maps onto the JSON error response.

    Subclasses set ``status`` and ``default_message``. The ``code`` is
    derived from the class name, so ``InvalidCsrfToken`` renders as
    ``keel/invalidCsrfToken``.
    """

    status: int = 500
    default_message: str = "Use case failed."

    def __init__(
        self,
        message: str | None = None,
        params: Mapping[str, Any] | None = None,
        *,
        status: int | None = None,
        trace_id: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.params: dict[str, Any] = dict(params or {})
        if status is not None:
            self.status = status
        self.trace_id = trace_id
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return f"keel/{_lower_camel(type(self).__name__)}"

    def __str__(self) -> str:
        return f"{self.status}: {self.message}"


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class HandlerNotFound(UseCaseError):
    """404: no route is registered for the use case."""

    status = 404
    default_message = "No handler is registered for the requested use case."

    def __init__(self, use_case: str) -> None:
        super().__init__(params={"useCase": use_case})


class InvalidHandlerMethod(UseCaseError):
    """405: the use case exists but not for this HTTP method."""

    status = 405
    default_message = "The use case does not accept this HTTP method."

    def __init__(self, use_case: str, method: str, allowed: str) -> None:
        super().__init__(
            params={"useCase": use_case, "method": method, "allowedMethod": allowed},
        )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthenticationFailure(UseCaseError):
    """401: the access token is missing, malformed, forged, or expired.

    ``params["cause"]`` is one of ``missingHeader``, ``invalidScheme``,
    ``invalidSignature``, ``tokenExpired`` or ``invalidToken``.
    """

    status = 401
    default_message = "User is not authenticated."

    def __init__(self, cause: str, message: str | None = None) -> None:
        super().__init__(message, {"cause": cause})

    @property
    def cause(self) -> str:
        return self.params["cause"]


class RefreshFlowFailure(UseCaseError):
    """401: base for the refresh-token exchange failures."""

    status = 401
    default_message = "Refresh token exchange has failed."


class InvalidRefreshToken(RefreshFlowFailure):
    default_message = "Invalid or missing refresh token cookie."


class MissingCsrfToken(RefreshFlowFailure):
    default_message = "Missing CSRF protection header."


class RefreshTokenMismatch(RefreshFlowFailure):
    default_message = "Refresh token has not been matched."


class InvalidCsrfToken(RefreshFlowFailure):
    default_message = "Invalid CSRF token."


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AuthorizationFailure(UseCaseError):
    """403: the principal holds none of the roles the use case requires."""

    status = 403
    default_message = "User is not authorized for the use case."


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


class AppStateBlocked(UseCaseError):
    """503: the current application state is not allowed for the route.

    Params mirror the wire shape: ``deniedState`` (the resolved state
    snapshot), ``allowedStates`` and ``route``.
    """

    status = 503

    def __init__(
        self,
        denied_state: Mapping[str, Any],
        allowed_states: list[str],
        route: str,
    ) -> None:
        message = (
            f"The application is currently in {denied_state['appState']!r} state "
            f"(since: {denied_state.get('from')}, reason: {denied_state.get('reason') or 'N/A'}). "
            f"Access to {route!r} requires one of {', '.join(allowed_states)!r} states."
        )
        super().__init__(
            message,
            {
                "deniedState": dict(denied_state),
                "allowedStates": list(allowed_states),
                "route": route,
            },
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationFailure(UseCaseError):
    """400: request input does not satisfy the use case schema.

    ``params["errors"]`` maps field names to lists of messages.
    """

    status = 400
    default_message = "Invalid input."

    def __init__(
        self,
        errors: Mapping[str, list[str]],
        *,
        use_case: str | None = None,
        schema_id: str | None = None,
        message: str | None = None,
    ) -> None:
        params: dict[str, Any] = {"errors": {k: list(v) for k, v in errors.items()}}
        if use_case is not None:
            params["useCase"] = use_case
        if schema_id is not None:
            params["schemaId"] = schema_id
        super().__init__(message, params)

    @property
    def errors(self) -> dict[str, list[str]]:
        return self.params["errors"]


class SchemaNotFound(UseCaseError):
    """500: a use case asked for validation but has no schema."""

    default_message = "Schema not found for given use case."

    def __init__(self, use_case: str, schema_id: str) -> None:
        super().__init__(params={"useCase": use_case, "schemaId": schema_id})


# ---------------------------------------------------------------------------
# Accounts and permissions
# ---------------------------------------------------------------------------


class LoginFailed(UseCaseError):
    status = 401
    default_message = "Login has failed."

    def __init__(self, cause: str) -> None:
        super().__init__(params={"cause": cause})


class MismatchingPasswords(UseCaseError):
    status = 401
    default_message = "Password is not repeated properly and is not matching."


class RegistrationFailed(UseCaseError):
    status = 400
    default_message = "Registration has failed."

    def __init__(self, cause: str) -> None:
        super().__init__(params={"cause": cause})


class UserNotFound(UseCaseError):
    status = 404
    default_message = "User not found."

    def __init__(self, username: str) -> None:
        super().__init__(params={"username": username})


class CannotLoadRoles(UseCaseError):
    status = 403
    default_message = "You are not authorized to load roles of other users."

    def __init__(self, user_roles: list[str], privileged_roles: list[str]) -> None:
        super().__init__(params={"userRoles": user_roles, "privilegedRoles": privileged_roles})


class PermissionSecretNotAvailable(UseCaseError):
    default_message = (
        "Application is not deployed with any permission secret, contact administrator."
    )


class PermissionSecretNotMatching(UseCaseError):
    status = 403
    default_message = "Permission secret is not matching."
