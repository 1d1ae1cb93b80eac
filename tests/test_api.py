from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from pastelite import create_app
from pastelite.repositories.exceptions import StoreUnavailableError


T0_MS = int(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc).timestamp() * 1000)


@pytest.fixture(params=["sqlalchemy", "memory"])
def app(request):
    app = create_app(
        "testing",
        {
            "STORE_BACKEND": request.param,
            "TEST_MODE": True,
            "PUBLIC_BASE_URL": "https://paste.example",
        },
    )
    yield app
    engine = app.extensions["pastelite"].get("engine")
    if engine is not None:
        engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


def create(client, headers=None, **body):
    return client.post("/api/pastes", json=body, headers=headers or {})


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_returns_id_and_share_url(client) -> None:
    resp = create(client, content="hello")

    assert resp.status_code == 201
    data = resp.get_json()
    uuid.UUID(data["id"])
    assert data["url"] == f"https://paste.example/p/{data['id']}"


def test_share_url_falls_back_to_request_host(app) -> None:
    app.config["PUBLIC_BASE_URL"] = ""
    resp = create(app.test_client(), content="hello")

    data = resp.get_json()
    assert data["url"] == f"http://localhost/p/{data['id']}"


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({}, "content is required and must be a non-empty string"),
        ({"content": ""}, "content is required and must be a non-empty string"),
        ({"content": "   "}, "content is required and must be a non-empty string"),
        ({"content": 12}, "content is required and must be a non-empty string"),
        ({"content": "x", "ttl_seconds": 0}, "ttl_seconds must be an integer >= 1"),
        ({"content": "x", "ttl_seconds": "10"}, "ttl_seconds must be an integer >= 1"),
        ({"content": "x", "ttl_seconds": 1.5}, "ttl_seconds must be an integer >= 1"),
        ({"content": "x", "max_views": -2}, "max_views must be an integer >= 1"),
        ({"content": "x", "max_views": True}, "max_views must be an integer >= 1"),
        ({"content": "x", "ttl_seconds": 10**12}, "ttl_seconds must be an integer >= 1"),
        ({"content": "x", "ttl_seconds": 2**40}, "ttl_seconds must be an integer >= 1"),
        ({"content": "x", "max_views": 2**31}, "max_views must be an integer >= 1"),
        ({"content": "x", "max_views": 2**63}, "max_views must be an integer >= 1"),
    ],
)
def test_create_validation_errors(client, body, message) -> None:
    resp = client.post("/api/pastes", json=body)

    assert resp.status_code == 400
    assert resp.get_json() == {"error": message}


def test_create_with_non_json_body(client) -> None:
    resp = client.post("/api/pastes", data="content=hi", content_type="text/plain")

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "content is required and must be a non-empty string"


def test_null_limits_mean_unlimited(client) -> None:
    resp = create(client, content="x", ttl_seconds=None, max_views=None)
    paste_id = resp.get_json()["id"]

    data = client.get(f"/api/pastes/{paste_id}").get_json()
    assert data == {"content": "x", "remaining_views": None, "expires_at": None}


# ---------------------------------------------------------------------------
# Fetch as JSON
# ---------------------------------------------------------------------------


def test_view_limited_paste(client) -> None:
    paste_id = create(client, content="secret", max_views=2).get_json()["id"]

    first = client.get(f"/api/pastes/{paste_id}")
    second = client.get(f"/api/pastes/{paste_id}")
    third = client.get(f"/api/pastes/{paste_id}")

    assert first.status_code == 200
    assert first.get_json()["remaining_views"] == 1
    assert second.get_json() == {"content": "secret", "remaining_views": 0, "expires_at": None}
    assert third.status_code == 404
    assert third.get_json() == {"error": "Paste not found"}


def test_expiry_uses_test_time_header(client) -> None:
    headers = {"X-Test-Now-Ms": str(T0_MS)}
    paste_id = create(client, headers=headers, content="timed", ttl_seconds=60).get_json()["id"]

    before = client.get(f"/api/pastes/{paste_id}", headers={"X-Test-Now-Ms": str(T0_MS + 59_000)})
    after = client.get(f"/api/pastes/{paste_id}", headers={"X-Test-Now-Ms": str(T0_MS + 61_000)})

    assert before.status_code == 200
    assert before.get_json()["expires_at"] == "2026-01-01T12:01:00.000Z"
    assert after.status_code == 404


def test_expiry_keeps_sub_second_precision(client) -> None:
    headers = {"X-Test-Now-Ms": str(T0_MS + 250)}
    paste_id = create(client, headers=headers, content="ms", ttl_seconds=1).get_json()["id"]

    resp = client.get(f"/api/pastes/{paste_id}", headers=headers)
    assert resp.get_json()["expires_at"] == "2026-01-01T12:00:01.250Z"


def test_malformed_time_header_is_ignored(client) -> None:
    paste_id = create(client, content="x").get_json()["id"]

    resp = client.get(f"/api/pastes/{paste_id}", headers={"X-Test-Now-Ms": "soon"})
    assert resp.status_code == 200


def test_time_header_ignored_outside_test_mode() -> None:
    app = create_app("testing", {"STORE_BACKEND": "memory"})
    client = app.test_client()

    far_past = {"X-Test-Now-Ms": "0"}
    paste_id = create(client, headers=far_past, content="x", ttl_seconds=60).get_json()["id"]

    # Created with the real clock, so a read now is still within the TTL.
    assert client.get(f"/api/pastes/{paste_id}").status_code == 200


@pytest.mark.parametrize("paste_id", ["nope", "1234", str(uuid.uuid4())])
def test_unknown_and_malformed_ids_look_the_same(client, paste_id) -> None:
    resp = client.get(f"/api/pastes/{paste_id}")

    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Paste not found"}


def test_store_failure_is_reported_generically(app, client) -> None:
    service = app.extensions["pastelite"]["paste_service"]

    def boom(*args, **kwargs):
        raise StoreUnavailableError("db down")

    service.retrieve_paste = boom
    resp = client.get(f"/api/pastes/{uuid.uuid4()}")

    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Internal server error"}


def test_correlation_id_is_echoed(client) -> None:
    resp = client.get("/api/healthz", headers={"X-Correlation-ID": "abc-123"})
    assert resp.headers["X-Correlation-ID"] == "abc-123"


# ---------------------------------------------------------------------------
# Rendered view
# ---------------------------------------------------------------------------


def test_rendered_view_escapes_content(client) -> None:
    payload = "<script>alert('x')</script>"
    paste_id = create(client, content=payload, max_views=1).get_json()["id"]

    resp = client.get(f"/p/{paste_id}")

    assert resp.status_code == 200
    assert resp.content_type.startswith("text/html")
    body = resp.get_data(as_text=True)
    assert payload not in body
    assert "&lt;script&gt;" in body

    gone = client.get(f"/p/{paste_id}")
    assert gone.status_code == 404
    assert gone.get_data(as_text=True) == "Paste not found"


def test_rendered_view_and_json_share_view_budget(client) -> None:
    paste_id = create(client, content="shared", max_views=2).get_json()["id"]

    assert client.get(f"/p/{paste_id}").status_code == 200
    assert client.get(f"/api/pastes/{paste_id}").get_json()["remaining_views"] == 0
    assert client.get(f"/p/{paste_id}").status_code == 404


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def test_healthz_ok(client) -> None:
    resp = client.get("/api/healthz")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}


def test_healthz_reports_store_outage(app, client) -> None:
    repository = app.extensions["pastelite"]["repository"]

    def down():
        raise StoreUnavailableError("unreachable")

    repository.ping = down
    resp = client.get("/api/healthz")

    assert resp.status_code == 500
    assert resp.get_json() == {"ok": False}
