"""
Company Intelligence Score
==========================
Composite 0-100 ratings for space companies from whatever profile data is
available. Each sub-score is a sum of banded points capped at 100; the
overall score is a weighted average of the six sub-scores.
"""
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from spacenexus.models.schemas import CompanyScoreRequest

Bands = Sequence[Tuple[float, int]]

DAYS_PER_MONTH = 30
# Assumed company age for the growth ratio when the founding year is unknown
DEFAULT_AGE_YEARS = 20

WEIGHTS = {
    'technology': 0.20,
    'team': 0.15,
    'funding': 0.20,
    'market_position': 0.20,
    'growth': 0.15,
    'momentum': 0.10,
}

METHODOLOGY = {
    'technology': 'Products count, satellite assets, partnerships, tier',
    'team': 'Key personnel count, employee count, public status',
    'funding': 'Total funding, round count, recency, public status',
    'market_position': 'Tier, contracts, revenue, age, public status',
    'growth': 'Funding rounds, employee/age ratio, partnerships, products',
    'momentum': 'News coverage, events, contracts, recent funding',
    'overall': 'Weighted average: tech 20%, team 15%, funding 20%, market 20%, growth 15%, momentum 10%',
}


def _band(value: float, bands: Bands) -> int:
    """Points for the first (threshold, points) band that `value` reaches."""
    for threshold, points in bands:
        if value >= threshold:
            return points
    return 0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _months_since(when: Optional[datetime], now: datetime) -> Optional[float]:
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return (now - when).total_seconds() / (DAYS_PER_MONTH * 24 * 3600)


def technology_score(data: CompanyScoreRequest) -> int:
    c = data.counts
    score = _band(c.products, [(5, 40), (3, 30), (1, 20)])
    score += _band(c.satelliteAssets, [(50, 30), (10, 25), (1, 15)])
    score += _band(c.partnerships, [(5, 20), (2, 12), (1, 6)])
    score += {1: 10, 2: 5}.get(data.tier, 0)
    return min(score, 100)


def team_score(data: CompanyScoreRequest) -> int:
    score = _band(data.counts.keyPersonnel, [(5, 50), (3, 35), (1, 20)])
    score += _band(data.employeeCount or 0, [(10000, 30), (1000, 25), (100, 18), (10, 10)])
    if data.isPublic:
        score += 20
    elif data.tier == 1:
        score += 10
    return min(score, 100)


def funding_score(data: CompanyScoreRequest, now: datetime) -> int:
    funding = data.totalFunding or 0
    score = _band(funding, [(1e9, 40), (500e6, 35), (100e6, 28), (50e6, 22), (10e6, 15)])
    if score == 0 and funding > 0:
        score = 8
    score += _band(data.counts.fundingRounds, [(5, 30), (3, 22), (1, 12)])
    if data.isPublic:
        score += 20

    months = _months_since(data.latestFundingDate, now)
    if months is not None:
        if months < 12:
            score += 10
        elif months < 24:
            score += 6
        elif months < 48:
            score += 3
    return min(score, 100)


def market_position_score(data: CompanyScoreRequest, now: datetime) -> int:
    score = {1: 30, 2: 18}.get(data.tier, 8)
    score += _band(data.counts.contracts, [(10, 25), (5, 20), (1, 12)])

    revenue = data.revenueEstimate or 0
    revenue_points = _band(revenue, [(1e9, 25), (100e6, 20), (10e6, 14)])
    if revenue_points == 0 and revenue > 0:
        revenue_points = 8
    score += revenue_points

    if data.isPublic:
        score += 10
    if data.foundedYear:
        score += _band(now.year - data.foundedYear, [(20, 10), (10, 7), (5, 4)])
    return min(score, 100)


def growth_score(data: CompanyScoreRequest, now: datetime) -> int:
    c = data.counts
    score = _band(c.fundingRounds, [(4, 30), (2, 20), (1, 10)])

    employees = data.employeeCount or 0
    age = (now.year - data.foundedYear) if data.foundedYear else DEFAULT_AGE_YEARS
    if employees > 0 and age > 0:
        score += _band(employees / age, [(500, 25), (100, 20), (20, 14), (5, 8)])

    score += _band(c.partnerships, [(3, 20), (1, 10)])
    score += _band(c.products, [(4, 25), (2, 16), (1, 8)])
    return min(score, 100)


def momentum_score(data: CompanyScoreRequest, now: datetime) -> int:
    c = data.counts
    score = _band(c.newsArticles, [(50, 35), (20, 28), (10, 20), (3, 12), (1, 5)])
    score += _band(c.events, [(10, 30), (5, 22), (2, 14), (1, 7)])
    score += _band(c.contracts, [(5, 20), (2, 14), (1, 8)])

    months = _months_since(data.latestFundingDate, now)
    if months is not None:
        if months < 6:
            score += 15
        elif months < 12:
            score += 10
        elif months < 24:
            score += 5
    return min(score, 100)


def calculate_company_scores(data: CompanyScoreRequest, now: Optional[datetime] = None) -> Dict[str, int]:
    """All six sub-scores plus the weighted `overall`."""
    now = now or datetime.now(timezone.utc)
    scores = {
        'technology': technology_score(data),
        'team': team_score(data),
        'funding': funding_score(data, now),
        'market_position': market_position_score(data, now),
        'growth': growth_score(data, now),
        'momentum': momentum_score(data, now),
    }
    overall = _round_half_up(sum(scores[k] * w for k, w in WEIGHTS.items()))
    scores['overall'] = min(overall, 100)
    return scores


def scores_to_records(scores: Dict[str, int]) -> List[Dict[str, object]]:
    """Rows of {scoreType, score, methodology} for storage or display."""
    return [
        {'scoreType': score_type, 'score': scores[score_type], 'methodology': METHODOLOGY[score_type]}
        for score_type in METHODOLOGY
    ]
