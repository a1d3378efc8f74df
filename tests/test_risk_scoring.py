"""
Regulatory risk assessment tests.
"""
import pytest

from conftest import auth
from spacenexus.services.risk_scoring import (
    COUNSEL_RECOMMENDATION,
    FACTOR_RECOMMENDATIONS,
    applicable_factors,
    assess_risk,
    estimate_timeline,
    risk_level,
)

_RECOMMENDATION = dict(FACTOR_RECOMMENDATIONS)


@pytest.mark.parametrize("score,level", [
    (0, "low"), (24, "low"), (25, "medium"), (49, "medium"),
    (50, "high"), (74, "high"), (75, "critical"), (100, "critical"),
])
def test_risk_levels(score, level):
    assert risk_level(score) == level


def test_launch_sector_assessment():
    result = assess_risk("launch")

    assert result["overallScore"] == 83
    assert result["riskLevel"] == "critical"
    assert [c["category"] for c in result["categoryScores"]] == [
        "export_control", "licensing", "environmental", "liability",
    ]
    assert result["categoryScores"][2]["score"] == 70
    assert result["categoryScores"][0]["label"] == "Export Controls"
    assert result["estimatedTimeline"] == "11-18 months"
    assert result["requiredLicenses"] == ["FAA Launch/Reentry License"]
    assert result["recommendations"] == [
        _RECOMMENDATION["itar_compliance"],
        _RECOMMENDATION["debris_mitigation"],
        _RECOMMENDATION["faa_launch_license"],
        COUNSEL_RECOMMENDATION,
    ]


def test_activity_flags_add_factors():
    result = assess_risk("analytics", ["multi_country"])

    assert result["overallScore"] == 69
    assert result["riskLevel"] == "high"
    assert result["estimatedTimeline"] == "4-6 months"
    assert _RECOMMENDATION["multi_jurisdiction"] in result["recommendations"]
    assert result["recommendations"][-1] == COUNSEL_RECOMMENDATION


def test_unknown_flag_is_taken_as_factor_id():
    result = assess_risk("unlisted", ["space_traffic_mgmt"])
    assert result["overallScore"] == 40
    assert result["riskLevel"] == "medium"
    assert result["estimatedTimeline"] == "Minimal regulatory timeline"
    assert result["recommendations"] == []


def test_no_factors():
    result = assess_risk("unlisted")
    assert result["overallScore"] == 0
    assert result["riskLevel"] == "low"
    assert result["categoryScores"] == []


def test_factors_are_deduplicated():
    factors = applicable_factors("launch", ["launches_from_us", "defense_articles"])
    assert factors.count("faa_launch_license") == 1
    assert factors.count("itar_compliance") == 1
    assert "foreign_ownership" in factors


def test_timeline_uses_longest_license():
    assert estimate_timeline(["itu_coordination", "ear_compliance"]) == "51-84 months"
    assert estimate_timeline([]) == "Minimal regulatory timeline"


# ─── Routes ─────────────────────────────────────────────────────────────────

def test_risk_route_requires_compliance_module(client, pro_user):
    resp = client.post("/api/regulatory/risk", json={"sector": "launch"}, headers=auth(pro_user))
    assert resp.status_code == 403
    assert resp.json()["error"]["details"]["requiredTier"] == "enterprise"


def test_risk_route(client, enterprise_user):
    resp = client.post(
        "/api/regulatory/risk",
        json={"sector": "launch", "activitiesFlags": []},
        headers=auth(enterprise_user),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["overallScore"] == 83


def test_risk_route_rejects_unknown_sector(client, enterprise_user):
    resp = client.post("/api/regulatory/risk", json={"sector": "tourism"}, headers=auth(enterprise_user))
    assert resp.status_code == 400


def test_sectors_route(client):
    data = client.get("/api/regulatory/sectors").json()["data"]
    assert len(data["sectors"]) == 9
    assert {"id": "nuclear_systems", "label": "Uses nuclear propulsion/power"} in data["activityFlags"]
    assert data["categories"]["emerging"] == "Emerging Regulations"
