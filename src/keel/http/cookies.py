"""Cookie parsing and ``Set-Cookie`` serialization.

The read side (``parse_cookies``) feeds ``Request.cookies``; the write
side (``SetCookie``) is collected on the request context and attached to
the final ``Response``.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, unquote

_EPOCH = "Thu, 01 Jan 1970 00:00:00 GMT"


def parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header value into a name-value dict.

    Later duplicates do not override earlier ones, matching how browsers
    order the more specific path first.
    """
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        name, sep, value = pair.strip().partition("=")
        if not sep or not name:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies.setdefault(name.strip(), unquote(value))
    return cookies


@dataclass(frozen=True, slots=True)
class SetCookie:
    """A ``Set-Cookie`` directive."""

    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str | None = "lax"
    expired: bool = False

    @classmethod
    def deletion(cls, name: str, *, path: str = "/", domain: str | None = None) -> SetCookie:
        """A directive that makes the browser drop the cookie."""
        return cls(name=name, value="", max_age=0, path=path, domain=domain, expired=True)

    @classmethod
    def parse(cls, header_value: str) -> SetCookie:
        """Read a ``Set-Cookie`` header value back into a directive."""
        first, *attributes = header_value.split(";")
        name, _, value = first.strip().partition("=")
        fields: dict[str, object] = {
            "httponly": False,
            "samesite": None,
            "path": "/",
        }
        for attribute in attributes:
            key, _, attr_value = attribute.strip().partition("=")
            match key.lower():
                case "max-age":
                    fields["max_age"] = int(attr_value)
                case "expires":
                    fields["expired"] = attr_value == _EPOCH
                case "path":
                    fields["path"] = attr_value
                case "domain":
                    fields["domain"] = attr_value
                case "secure":
                    fields["secure"] = True
                case "httponly":
                    fields["httponly"] = True
                case "samesite":
                    fields["samesite"] = attr_value.lower()
        return cls(name=name, value=unquote(value), **fields)  # type: ignore[arg-type]

    def to_header_value(self) -> str:
        parts = [f"{self.name}={quote(self.value, safe='')}"]
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.expired:
            parts.append(f"Expires={_EPOCH}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        # Browsers reject SameSite=None without Secure
        if self.secure or (self.samesite or "").lower() == "none":
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite.capitalize()}")
        return "; ".join(parts)
