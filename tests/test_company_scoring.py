"""
Company intelligence score tests.
"""
from datetime import datetime, timedelta, timezone

from spacenexus.models.schemas import CompanyCounts, CompanyScoreRequest
from spacenexus.services.company_scoring import (
    METHODOLOGY,
    calculate_company_scores,
    funding_score,
    scores_to_records,
)

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _profile(**fields):
    counts = fields.pop("counts", {})
    return CompanyScoreRequest(counts=CompanyCounts(**counts), **fields)


def test_empty_profile():
    scores = calculate_company_scores(_profile(), now=NOW)
    assert scores == {
        "technology": 0,
        "team": 0,
        "funding": 0,
        "market_position": 8,   # tier 3 baseline
        "growth": 0,
        "momentum": 0,
        "overall": 2,
    }


def test_mid_stage_company():
    data = _profile(
        tier=2,
        totalFunding=60e6,
        employeeCount=150,
        foundedYear=2016,
        latestFundingDate=NOW - timedelta(days=400),
        counts={
            "products": 2, "keyPersonnel": 3, "fundingRounds": 2, "contracts": 3,
            "events": 2, "newsArticles": 12, "satelliteAssets": 4, "partnerships": 1,
        },
    )
    scores = calculate_company_scores(data, now=NOW)
    assert scores == {
        "technology": 46,
        "team": 53,
        "funding": 40,
        "market_position": 37,
        "growth": 54,
        "momentum": 53,
        "overall": 46,
    }


def test_sub_scores_are_capped():
    data = _profile(
        tier=1,
        isPublic=True,
        totalFunding=2e9,
        revenueEstimate=5e9,
        employeeCount=12000,
        foundedYear=2002,
        latestFundingDate=NOW - timedelta(days=90),
        counts={
            "products": 6, "keyPersonnel": 5, "fundingRounds": 5, "contracts": 12,
            "events": 10, "newsArticles": 60, "satelliteAssets": 60, "partnerships": 5,
        },
    )
    scores = calculate_company_scores(data, now=NOW)
    assert set(scores.values()) == {100}


def test_small_funding_gets_floor_points():
    assert funding_score(_profile(totalFunding=1e6), NOW) == 8


def test_naive_funding_date_is_utc():
    data = _profile(latestFundingDate=datetime(2025, 10, 1))
    # ~3 months ago: +10 recency
    assert funding_score(data, NOW) == 10


def test_records_cover_every_score():
    scores = calculate_company_scores(_profile(), now=NOW)
    records = scores_to_records(scores)
    assert [r["scoreType"] for r in records] == list(METHODOLOGY)
    assert len(records) == 7
    assert records[-1] == {"scoreType": "overall", "score": 2, "methodology": METHODOLOGY["overall"]}


def test_score_route(client):
    resp = client.post("/api/companies/score", json={"tier": 1, "isPublic": True})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["scores"]["team"] == 20
    assert len(data["records"]) == 7


def test_score_route_validates_tier(client):
    resp = client.post("/api/companies/score", json={"tier": 7})
    assert resp.status_code == 400
