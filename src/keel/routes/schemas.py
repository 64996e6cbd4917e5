"""Input schemas for the default use cases."""

from keel.appstate.states import AppState
from keel.validation.rules import (
    boolean,
    email,
    iso_datetime,
    max_length,
    min_length,
    one_of,
    required,
    string,
)
from keel.validation.schemas import Schema

_USERNAME = [required, string, max_length(254)]
_PASSWORD = [required, string, min_length(8), max_length(128)]
_NAME = [required, string, max_length(100)]

DEFAULT_SCHEMAS: dict[str, Schema] = {
    # /user
    "UserRegisterSchema": {
        "username": _USERNAME,
        "password": _PASSWORD,
        "confirmPassword": [required, string],
        "firstName": _NAME,
        "lastName": _NAME,
        "email": [string, email],
        "language": [string, max_length(16)],
    },
    "UserLoginSchema": {
        "username": [required, string],
        "password": [required, string],
    },
    "UserLogoutSchema": {
        "global": [boolean],
    },
    "UserChangePasswordSchema": {
        "currentPassword": [required, string],
        "password": _PASSWORD,
        "confirmPassword": [required, string],
    },
    "UserResetPasswordSchema": {
        "username": [required, string],
    },
    "UserChangePasswordByResetSchema": {
        "token": [required, string],
        "password": _PASSWORD,
        "confirmPassword": [required, string],
    },
    "UserGetSchema": {
        "username": [required, string],
    },
    "UserSetPasswordSchema": {
        "username": [required, string],
        "password": _PASSWORD,
    },
    # /permission
    "PermissionGrantSchema": {
        "user": [required, string],
        "role": [required, string],
    },
    "PermissionRevokeSchema": {
        "user": [required, string],
        "role": [string],
        "all": [boolean],
    },
    "PermissionListSchema": {
        "user": [string],
    },
    "PermissionSecretGrantSchema": {
        "role": [required, string],
        "secret": [required, string],
    },
    # /sys
    "SysScheduleStateChangeSchema": {
        "appState": [required, one_of(*(state.value for state in AppState))],
        "from": [required, iso_datetime],
        "reason": [string, max_length(500)],
    },
}
