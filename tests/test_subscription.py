"""
Subscription tier gating tests.
"""
from datetime import datetime, timedelta, timezone

from conftest import auth, make_user
from spacenexus.core.subscription import (
    can_access_feature,
    can_access_module,
    effective_tier,
    get_required_tier_for_module,
    is_trial_active,
    normalize_tier,
    tier_at_least,
)
from spacenexus.models.tables import utcnow


def test_feature_flags_by_tier():
    assert can_access_feature("free", "has_market_intel") is True
    assert can_access_feature("free", "ad_free") is False
    assert can_access_feature("pro", "ad_free") is True
    assert can_access_feature("pro", "has_api_access") is False
    assert can_access_feature("enterprise", "has_api_access") is True


def test_numeric_limits_count_as_enabled():
    # free: 25/day, pro: -1 (unlimited)
    assert can_access_feature("free", "max_daily_articles") is True
    assert can_access_feature("pro", "max_daily_articles") is True


def test_unknown_feature_is_denied():
    assert can_access_feature("enterprise", "time_travel") is False


def test_unknown_tier_is_treated_as_free():
    assert normalize_tier("platinum") == "free"
    assert normalize_tier(None) == "free"
    assert can_access_feature("platinum", "ad_free") is False


def test_module_gating():
    assert get_required_tier_for_module("compliance") == "enterprise"
    assert get_required_tier_for_module("alerts") == "pro"
    assert get_required_tier_for_module("news-feed") is None

    assert can_access_module("free", "news-feed") is True
    assert can_access_module("free", "alerts") is False
    assert can_access_module("pro", "alerts") is True
    assert can_access_module("pro", "compliance") is False
    assert can_access_module("enterprise", "compliance") is True


def test_tier_ordering():
    assert tier_at_least("enterprise", "pro")
    assert tier_at_least("pro", "pro")
    assert not tier_at_least("free", "pro")


def test_trial_tier_applies_while_active():
    future = datetime.now(timezone.utc) + timedelta(days=3)
    past = datetime.now(timezone.utc) - timedelta(days=3)

    assert is_trial_active(future)
    assert not is_trial_active(past)
    assert not is_trial_active(None)
    assert effective_tier("free", "pro", future) == "pro"
    assert effective_tier("free", "enterprise", future) == "enterprise"
    assert effective_tier("pro", "enterprise", future) == "enterprise"
    assert effective_tier("free", "enterprise", past) == "free"


def test_trial_never_downgrades_or_applies_without_tier():
    future = datetime.now(timezone.utc) + timedelta(days=3)
    assert effective_tier("enterprise", "pro", future) == "enterprise"
    assert effective_tier("free", None, future) == "free"
    assert effective_tier("free", "enterprise", None) == "free"
    assert effective_tier("free", "platinum", future) == "free"


def test_naive_trial_end_is_read_as_utc():
    naive_future = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
    assert is_trial_active(naive_future)


# ─── Routes ─────────────────────────────────────────────────────────────────

def test_plans_endpoint(client):
    resp = client.get("/api/subscription/plans")
    assert resp.status_code == 200
    plans = resp.json()["data"]["plans"]
    assert [p["id"] for p in plans] == ["free", "pro", "enterprise"]
    assert plans[1]["highlighted"] is True


def test_access_for_anonymous_caller(client):
    resp = client.get("/api/subscription/access", params={"module": "compliance"})
    data = resp.json()["data"]
    assert data["tier"] == "free"
    assert data["features"]["max_daily_articles"] == 25
    assert data["module"] == {"id": "compliance", "requiredTier": "enterprise", "hasAccess": False}


def test_access_for_enterprise_user(client, enterprise_user):
    resp = client.get(
        "/api/subscription/access",
        params={"module": "compliance"},
        headers=auth(enterprise_user),
    )
    data = resp.json()["data"]
    assert data["effectiveTier"] == "enterprise"
    assert data["features"]["has_api_access"] is True
    assert data["module"]["hasAccess"] is True


def test_enterprise_trial_unlocks_enterprise_routes(client, db):
    trialist = make_user(
        db, "trial@example.com",
        trial_tier="enterprise",
        trial_ends_at=utcnow() + timedelta(days=7),
    )

    data = client.get(
        "/api/subscription/access",
        params={"module": "compliance"},
        headers=auth(trialist),
    ).json()["data"]
    assert data["tier"] == "free"
    assert data["effectiveTier"] == "enterprise"
    assert data["trialTier"] == "enterprise"
    assert data["trialActive"] is True
    assert data["module"]["hasAccess"] is True

    resp = client.post("/api/regulatory/risk", json={"sector": "launch"}, headers=auth(trialist))
    assert resp.status_code == 200
    resp = client.post("/api/keys", json={"name": "trial key"}, headers=auth(trialist))
    assert resp.status_code == 201


def test_expired_enterprise_trial_falls_back(client, db):
    lapsed = make_user(
        db, "lapsed@example.com",
        trial_tier="enterprise",
        trial_ends_at=utcnow() - timedelta(days=1),
    )
    data = client.get("/api/subscription/access", headers=auth(lapsed)).json()["data"]
    assert data["effectiveTier"] == "free"
    assert data["trialActive"] is False

    resp = client.post("/api/regulatory/risk", json={"sector": "launch"}, headers=auth(lapsed))
    assert resp.status_code == 403
