"""Tests for keel.http.response."""

from datetime import UTC, datetime

from keel.appstate import AppState
from keel.http.cookies import SetCookie
from keel.http.response import Response, dumps, empty_response, json_response


class TestResponse:
    def test_with_methods_return_new_instances(self) -> None:
        base = Response("hi")
        changed = base.with_status(201).with_header("X-A", "1").with_headers({"X-B": "2"})
        assert base.status == 200
        assert base.headers == ()
        assert changed.status == 201
        assert changed.header("x-a") == "1"
        assert changed.header("X-B") == "2"
        assert changed.header("X-C") is None

    def test_last_cookie_wins(self) -> None:
        response = Response().with_cookie(SetCookie("a", "1")).with_cookie(SetCookie("a", "2"))
        assert response.cookie("a").value == "2"
        assert response.cookie("b") is None

    def test_body_views(self) -> None:
        assert Response("héllo").body_bytes == "héllo".encode()
        assert Response(b"abc").text == "abc"

    def test_empty(self) -> None:
        response = empty_response()
        assert response.status == 204
        assert response.body_bytes == b""


class TestJson:
    def test_json_response(self) -> None:
        response = json_response({"a": [1, 2]}, status=400)
        assert response.status == 400
        assert response.content_type == "application/json"
        assert response.json() == {"a": [1, 2]}

    def test_dumps_handles_domain_values(self) -> None:
        class Snapshot:
            def to_dict(self) -> dict[str, str]:
                return {"kind": "snapshot"}

        payload = {
            "at": datetime(2026, 1, 1, tzinfo=UTC),
            "state": AppState.IN_MAINTENANCE,
            "roles": ("Admin",),
            "snapshot": Snapshot(),
        }
        assert dumps(payload) == (
            '{"at": "2026-01-01T00:00:00+00:00", "state": "inMaintenance", '
            '"roles": ["Admin"], "snapshot": {"kind": "snapshot"}}'
        )
