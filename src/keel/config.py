"""Application configuration.

AppConfig is a frozen dataclass with typed defaults.
``AppConfig.from_env()`` builds one from ``KEEL_*`` environment
variables with strict conversion.
"""

from __future__ import annotations

import math
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace

from keel.errors import ConfigurationError

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d|w)?\s*$")
_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
    "w": 604800.0,
}

# Fields that accept "15m" / "30d" style strings from the environment
_DURATION_FIELDS = frozenset(
    {
        "session_expiry",
        "refresh_token_expiry",
        "reset_token_expiry",
        "authorization_cache_ttl",
        "app_state_cache_ttl",
    }
)


def parse_duration(value: str | float) -> float:
    """Convert a duration to seconds.

    Accepts numbers (already seconds) and strings such as ``"90"``,
    ``"90s"``, ``"15m"``, ``"24h"``, ``"30d"`` or ``"500ms"``.

    Raises:
        ConfigurationError: If the value cannot be parsed or is negative.
    """
    if isinstance(value, bool):
        msg = f"Invalid duration: {value!r}"
        raise ConfigurationError(msg)
    if isinstance(value, int | float):
        seconds = float(value)
    else:
        match = _DURATION_RE.match(value)
        if match is None:
            msg = f"Invalid duration: {value!r}. Use e.g. '90s', '15m', '24h' or '30d'."
            raise ConfigurationError(msg)
        amount, unit = match.groups()
        seconds = float(amount) * _DURATION_UNITS[unit or "s"]
    if seconds < 0 or math.isnan(seconds):
        msg = f"Duration must be a non-negative number of seconds, got {value!r}"
        raise ConfigurationError(msg)
    return seconds


def parse_bool(name: str, raw: str) -> bool:
    """Strict boolean conversion: only ``true`` and ``false`` are accepted."""
    lowered = raw.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    msg = f"Config {name} must be 'true' or 'false', got {raw!r}"
    raise ConfigurationError(msg)


def _parse_number(name: str, raw: str, kind: type) -> int | float:
    try:
        return kind(raw.strip())
    except ValueError:
        msg = f"Config {name} must be a valid {kind.__name__}, got {raw!r}"
        raise ConfigurationError(msg) from None


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults except the signing keys, which must
    be provided before the app serves requests::

        config = AppConfig(jwt_key="...", refresh_token_key="...", cookie_key="...")
    """

    # Runtime
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8000

    # Token signing
    jwt_key: str = ""
    refresh_token_key: str = ""
    cookie_key: str = ""
    jwt_algorithm: str = "HS256"

    # Token lifetimes (seconds)
    session_expiry: float = 15 * 60
    refresh_token_expiry: float = 30 * 86400
    reset_token_expiry: float = 24 * 3600

    # Refresh cookie and CSRF binding
    refresh_cookie_name: str = "refreshToken"
    refresh_cookie_path: str = "/user"
    csrf_request_headers: tuple[str, ...] = ("x-xsrf-token", "x-csrf-token")
    csrf_response_header: str = "X-Csrf-Token"

    # Authorization role cache
    authorization_cache_ttl: float = 5 * 60
    authorization_cache_max: int = 10_000

    # Application state gate
    app_state_cache_ttl: float = 60.0
    app_state_cache_max: int = 1
    skip_app_state_check: bool = False

    # Errors
    trace_header: str = "X-Cloud-Trace-Context"

    # Permission bootstrap (``/permission/secretGrant``)
    permission_grant_key: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production (no TLS on localhost)."""
        return self.is_production

    @property
    def cookie_samesite(self) -> str:
        """Cross-site frontends in production need ``SameSite=None``."""
        return "none" if self.is_production else "lax"

    def require_secrets(self) -> None:
        """Raise ``ConfigurationError`` if any signing key is empty."""
        missing = [
            name
            for name in ("jwt_key", "refresh_token_key", "cookie_key")
            if not getattr(self, name)
        ]
        if missing:
            msg = f"Signing keys must not be empty: {', '.join(missing)}"
            raise ConfigurationError(msg)

    def with_overrides(self, **changes: object) -> AppConfig:
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        prefix: str = "KEEL_",
    ) -> AppConfig:
        """Build a config from ``KEEL_<FIELD>`` environment variables.

        Booleans accept only ``true``/``false``, numbers must parse, and
        duration fields accept ``"15m"`` style strings. Unset variables keep
        the dataclass default.

        Raises:
            ConfigurationError: On any value that cannot be converted.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        defaults = cls()
        for f in fields(cls):
            raw = env.get(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            default = getattr(defaults, f.name)
            env_name = f"{prefix}{f.name.upper()}"
            if f.name in _DURATION_FIELDS:
                values[f.name] = parse_duration(raw)
            elif isinstance(default, bool):
                values[f.name] = parse_bool(env_name, raw)
            elif isinstance(default, int):
                values[f.name] = _parse_number(env_name, raw, int)
            elif isinstance(default, float):
                values[f.name] = _parse_number(env_name, raw, float)
            elif isinstance(default, tuple):
                values[f.name] = tuple(p.strip() for p in raw.split(",") if p.strip())
            else:
                values[f.name] = raw
        return cls(**values)
