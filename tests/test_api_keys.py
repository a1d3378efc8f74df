"""
Public API key tests: issuing, authentication, quotas and the /api/v1
surface.
"""
from datetime import datetime, timedelta, timezone

import pytest

from conftest import auth
from spacenexus.models.tables import ApiKey, ApiUsageLog, to_naive_utc, utcnow
from spacenexus.services.api_keys import (
    API_RATE_LIMITS,
    KEY_PREFIX,
    ApiRateLimit,
    generate_api_key,
    hash_api_key,
    issue_api_key,
    limits_for,
    revoke_api_key,
)


def _bearer(raw_key):
    return {"Authorization": f"Bearer {raw_key}"}


def _log_usage(db, key, count, when=None):
    when = when or utcnow()
    db.add_all([
        ApiUsageLog(api_key_id=key.id, endpoint="/api/v1/freshness", method="GET", created_at=when)
        for _ in range(count)
    ])
    db.commit()


# ─── Test a: key material ───────────────────────────────────────────────────

def test_generated_keys_are_unique_and_prefixed():
    first, second = generate_api_key(), generate_api_key()
    assert first.startswith(KEY_PREFIX)
    assert first != second


def test_only_hash_is_stored(db, enterprise_user):
    key, raw_key = issue_api_key(db, enterprise_user.id, "CI")
    assert key.key_hash == hash_api_key(raw_key)
    assert len(key.key_hash) == 64
    assert key.key_prefix == raw_key[:12]
    assert raw_key not in (key.key_hash, key.key_prefix)


def test_unknown_tier_gets_developer_limits():
    assert limits_for("galactic") == API_RATE_LIMITS["developer"]
    assert limits_for("enterprise").monthly == -1


# ─── Test b: authentication ─────────────────────────────────────────────────

def test_bearer_and_header_authentication(client, db, enterprise_user):
    key, raw_key = issue_api_key(db, enterprise_user.id, "dashboard")

    resp = client.get("/api/v1/freshness", headers={**_bearer(raw_key), "X-Request-ID": "req-123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["meta"] == {"requestId": "req-123", "tier": "developer"}
    assert body["data"]["total"] > 0

    resp = client.get("/api/v1/freshness", headers={"X-API-Key": raw_key})
    assert resp.status_code == 200


def test_usage_is_logged(client, db, enterprise_user):
    key, raw_key = issue_api_key(db, enterprise_user.id, "dashboard")
    client.get("/api/v1/freshness", headers=_bearer(raw_key))

    log = db.query(ApiUsageLog).one()
    assert log.endpoint == "/api/v1/freshness"
    assert log.method == "GET"
    db.refresh(key)
    assert key.last_used_at is not None


@pytest.mark.parametrize("headers", [
    {},
    {"Authorization": "Bearer not-a-key"},
    {"X-API-Key": KEY_PREFIX + "unknown"},
])
def test_rejects_missing_or_unknown_keys(client, headers):
    resp = client.get("/api/v1/freshness", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


def test_rejects_revoked_key(client, db, enterprise_user):
    key, raw_key = issue_api_key(db, enterprise_user.id, "old")
    revoke_api_key(db, key)
    resp = client.get("/api/v1/freshness", headers=_bearer(raw_key))
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "API key has been revoked."


def test_rejects_expired_key(client, db, enterprise_user):
    _, raw_key = issue_api_key(db, enterprise_user.id, "temp", expires_at=utcnow() - timedelta(minutes=1))
    resp = client.get("/api/v1/freshness", headers=_bearer(raw_key))
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "TOKEN_EXPIRED"


# ─── Test c: quotas ─────────────────────────────────────────────────────────

def test_per_minute_limit(client, db, enterprise_user):
    key, raw_key = issue_api_key(db, enterprise_user.id, "burst")
    _log_usage(db, key, API_RATE_LIMITS["developer"].per_minute)

    resp = client.get("/api/v1/freshness", headers=_bearer(raw_key))
    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "60"
    assert resp.headers["X-RateLimit-Limit"] == "60"
    assert resp.headers["X-RateLimit-Remaining"] == "0"


def test_old_usage_does_not_count_per_minute(client, db, enterprise_user):
    key, raw_key = issue_api_key(db, enterprise_user.id, "steady")
    _log_usage(db, key, 60, when=utcnow() - timedelta(minutes=5))
    assert client.get("/api/v1/freshness", headers=_bearer(raw_key)).status_code == 200


def test_monthly_limit(client, db, enterprise_user, monkeypatch):
    monkeypatch.setitem(API_RATE_LIMITS, "developer", ApiRateLimit(monthly=2, per_minute=100))
    key, raw_key = issue_api_key(db, enterprise_user.id, "small")
    _log_usage(db, key, 2)

    resp = client.get("/api/v1/freshness", headers=_bearer(raw_key))
    assert resp.status_code == 429
    assert "Monthly API limit exceeded" in resp.json()["error"]["message"]
    assert int(resp.headers["Retry-After"]) > 0


def test_unlimited_monthly_quota(client, db, enterprise_user, monkeypatch):
    monkeypatch.setitem(API_RATE_LIMITS, "enterprise", ApiRateLimit(monthly=-1, per_minute=1000))
    key, raw_key = issue_api_key(db, enterprise_user.id, "big", tier="enterprise")
    _log_usage(db, key, 50, when=utcnow() - timedelta(minutes=2))
    assert client.get("/api/v1/freshness", headers=_bearer(raw_key)).status_code == 200


# ─── Test d: v1 endpoints ───────────────────────────────────────────────────

def test_v1_company_score(client, db, enterprise_user):
    _, raw_key = issue_api_key(db, enterprise_user.id, "scores")
    resp = client.post("/api/v1/companies/score", json={"tier": 1}, headers=_bearer(raw_key))
    assert resp.status_code == 200
    assert resp.json()["data"]["technology"] == 10


def test_v1_regulatory_risk(client, db, enterprise_user):
    _, raw_key = issue_api_key(db, enterprise_user.id, "risk")
    resp = client.post("/api/v1/regulatory/risk", json={"sector": "launch"}, headers=_bearer(raw_key))
    assert resp.json()["data"]["riskLevel"] == "critical"

    resp = client.post("/api/v1/regulatory/risk", json={"sector": "tourism"}, headers=_bearer(raw_key))
    assert resp.status_code == 400


# ─── Test e: key management routes ──────────────────────────────────────────

def test_key_routes_require_api_access(client, pro_user):
    resp = client.post("/api/keys", json={"name": "mine"}, headers=auth(pro_user))
    assert resp.status_code == 403


def test_create_list_revoke_key(client, db, enterprise_user):
    resp = client.post("/api/keys", json={"name": "Zapier"}, headers=auth(enterprise_user))
    assert resp.status_code == 201
    created = resp.json()["data"]
    assert created["key"].startswith(KEY_PREFIX)
    assert created["keyPrefix"] == created["key"][:12]
    assert created["limits"] == {"monthly": 5000, "perMinute": 60}

    keys = client.get("/api/keys", headers=auth(enterprise_user)).json()["data"]["keys"]
    assert len(keys) == 1
    assert "key" not in keys[0]

    resp = client.delete(f"/api/keys/{created['id']}", headers=auth(enterprise_user))
    assert resp.json()["data"]["isActive"] is False
    db.expire_all()
    assert db.get(ApiKey, created["id"]).revoked_at is not None


def test_only_admins_issue_higher_tiers(client, enterprise_user, admin_user):
    resp = client.post("/api/keys", json={"name": "big", "tier": "business"}, headers=auth(enterprise_user))
    assert resp.status_code == 403

    resp = client.post("/api/keys", json={"name": "big", "tier": "business"}, headers=auth(admin_user))
    assert resp.status_code == 201
    assert resp.json()["data"]["tier"] == "business"


def test_offset_expiry_is_converted_to_utc(client, db, enterprise_user):
    plus_five = timezone(timedelta(hours=5))
    expired = (datetime.now(plus_five) - timedelta(hours=1)).isoformat()

    resp = client.post("/api/keys", json={"name": "tz", "expiresAt": expired}, headers=auth(enterprise_user))
    assert resp.status_code == 201
    created = resp.json()["data"]

    stored = db.get(ApiKey, created["id"]).expires_at
    assert stored < utcnow()

    resp = client.get("/api/v1/freshness", headers=_bearer(created["key"]))
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "TOKEN_EXPIRED"


def test_to_naive_utc():
    aware = datetime(2026, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=-4)))
    assert to_naive_utc(aware) == datetime(2026, 3, 1, 16, 0)
    assert to_naive_utc(datetime(2026, 3, 1, 12, 0)) == datetime(2026, 3, 1, 12, 0)
