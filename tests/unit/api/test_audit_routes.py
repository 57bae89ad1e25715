"""
Name: Audit Ingest Route Tests

Responsibilities:
  - POST /v1/audit/events: sync vs deferred writes, attribution, 403/422
  - Per-IP telemetry rate limit (429 + Retry-After)
"""

import pytest

from security_core.application import RateLimiter, build_policies

pytestmark = pytest.mark.unit


def _event(**overrides):
    body = {
        "action": "user.updated",
        "category": "users",
        "targetId": "user-2",
        "targetType": "user",
        "metadata": {"field": "email"},
    }
    body.update(overrides)
    return body


def test_authenticated_event_is_deferred(client, core, headers_for):
    res = client.post(
        "/v1/audit/events", json=_event(), headers=headers_for("admin-1")
    )

    assert res.status_code == 202
    assert res.json()["deferred"] is True

    entry = core.query_audit_log().entries[0]
    assert entry.user_id == "admin-1"
    assert entry.target_id == "user-2"
    assert entry.ip_address == "testclient"


def test_security_category_is_written_synchronously(client, headers_for):
    res = client.post(
        "/v1/audit/events",
        json=_event(action="access.denied", category="security"),
        headers=headers_for("admin-1"),
    )

    assert res.status_code == 202
    body = res.json()
    assert body["deferred"] is False
    assert isinstance(body["id"], int)


def test_anonymous_failed_login_is_accepted(client, core):
    res = client.post(
        "/v1/audit/events",
        json=_event(action="login.failed", category="auth", metadata={"email_hash": "ab"}),
    )

    assert res.status_code == 202
    entry = core.query_audit_log().entries[0]
    assert entry.user_id is None


def test_anonymous_event_is_forbidden(client, reasons_of):
    res = client.post("/v1/audit/events", json=_event())

    assert res.status_code == 403
    assert res.headers["content-type"].startswith("application/problem+json")
    assert reasons_of(res) == ["anonymous_event_not_allowed"]


@pytest.mark.parametrize(
    "overrides", [{"action": "user.teleported"}, {"category": "misc"}]
)
def test_unknown_action_or_category_is_422(client, headers_for, overrides):
    res = client.post(
        "/v1/audit/events", json=_event(**overrides), headers=headers_for("admin-1")
    )

    assert res.status_code == 422
    assert res.json()["code"] == "VALIDATION_ERROR"


def test_missing_fields_are_422(client, headers_for):
    res = client.post(
        "/v1/audit/events", json={"category": "users"}, headers=headers_for("admin-1")
    )
    assert res.status_code == 422


def test_ingest_is_rate_limited_per_ip(client, core, rate_store, headers_for):
    core.rate_limiter = RateLimiter(
        rate_store, build_policies({"telemetry": {"limit": 2, "window_ms": 60_000}})
    )

    statuses = [
        client.post(
            "/v1/audit/events", json=_event(), headers=headers_for("admin-1")
        ).status_code
        for _ in range(3)
    ]

    assert statuses == [202, 202, 429]
    res = client.post("/v1/audit/events", json=_event(), headers=headers_for("admin-1"))
    assert res.json()["code"] == "RATE_LIMITED"
    assert 1 <= int(res.headers["Retry-After"]) <= 60
