"""Tests for keel.http.cookies: parse_cookies and SetCookie."""

import pytest

from keel.http.cookies import SetCookie, parse_cookies


class TestParseCookies:
    def test_empty(self) -> None:
        assert parse_cookies("") == {}

    def test_multiple(self) -> None:
        assert parse_cookies("a=1; refreshToken=abc.def") == {"a": "1", "refreshToken": "abc.def"}

    def test_whitespace_and_quotes(self) -> None:
        assert parse_cookies('  a = 1 ; b="quoted" ') == {"a": "1", "b": "quoted"}

    def test_value_with_equals(self) -> None:
        assert parse_cookies("token=abc=def=") == {"token": "abc=def="}

    def test_percent_decoded(self) -> None:
        assert parse_cookies("v=a%3Bb") == {"v": "a;b"}

    def test_pairs_without_equals_skipped(self) -> None:
        assert parse_cookies("a=1; broken; b=2") == {"a": "1", "b": "2"}

    def test_first_duplicate_wins(self) -> None:
        assert parse_cookies("a=1; a=2") == {"a": "1"}


class TestSetCookie:
    def test_defaults(self) -> None:
        header = SetCookie("sid", "abc").to_header_value()
        assert header == "sid=abc; Path=/; HttpOnly; SameSite=Lax"

    def test_full(self) -> None:
        header = SetCookie(
            "refreshToken",
            "a.b",
            max_age=60,
            path="/user",
            domain="example.com",
            secure=True,
            samesite="strict",
        ).to_header_value()
        assert header == (
            "refreshToken=a.b; Max-Age=60; Path=/user; Domain=example.com; "
            "Secure; HttpOnly; SameSite=Strict"
        )

    def test_samesite_none_forces_secure(self) -> None:
        assert "Secure" in SetCookie("x", "1", samesite="none").to_header_value()

    def test_value_quoted(self) -> None:
        assert SetCookie("x", "a;b").to_header_value().startswith("x=a%3Bb;")

    def test_deletion(self) -> None:
        header = SetCookie.deletion("refreshToken", path="/user").to_header_value()
        assert "Max-Age=0" in header
        assert "Expires=Thu, 01 Jan 1970 00:00:00 GMT" in header
        assert "Path=/user" in header


class TestSetCookieParse:
    def test_reads_back_attributes(self) -> None:
        original = SetCookie(
            "refreshToken", "a;b", max_age=60, path="/user", secure=True, samesite="strict"
        )
        parsed = SetCookie.parse(original.to_header_value())
        assert parsed == original

    def test_deletion_reads_back(self) -> None:
        parsed = SetCookie.parse(SetCookie.deletion("x", path="/user").to_header_value())
        assert parsed.expired
        assert parsed.max_age == 0
        assert parsed.path == "/user"

    @pytest.mark.parametrize(
        ("header", "httponly", "samesite"),
        [("a=1", False, None), ("a=1; HttpOnly", True, None), ("a=1; SameSite=Lax", False, "lax")],
    )
    def test_flags_absent_unless_present(
        self, header: str, httponly: bool, samesite: str | None
    ) -> None:
        parsed = SetCookie.parse(header)
        assert parsed.httponly is httponly
        assert parsed.samesite == samesite
        assert parsed.path == "/"
