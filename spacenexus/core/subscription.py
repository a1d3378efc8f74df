"""
Subscription Tier Gating
========================
Feature and module access tables for the free / pro / enterprise tiers.

A value of -1 for a numeric limit means "unlimited".
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

FREE = "free"
PRO = "pro"
ENTERPRISE = "enterprise"

TIERS = (FREE, PRO, ENTERPRISE)
_TIER_RANK = {tier: rank for rank, tier in enumerate(TIERS)}


@dataclass(frozen=True)
class TierAccess:
    max_daily_articles: int
    has_stock_tracking: bool
    has_market_intel: bool
    has_resource_exchange: bool
    has_ai_opportunities: bool
    has_alerts: bool
    has_api_access: bool
    ad_free: bool


TIER_ACCESS: Dict[str, TierAccess] = {
    FREE: TierAccess(
        max_daily_articles=25,
        has_stock_tracking=False,
        has_market_intel=True,
        has_resource_exchange=False,
        has_ai_opportunities=False,
        has_alerts=False,
        has_api_access=False,
        ad_free=False,
    ),
    PRO: TierAccess(
        max_daily_articles=-1,
        has_stock_tracking=True,
        has_market_intel=True,
        has_resource_exchange=True,
        has_ai_opportunities=False,
        has_alerts=True,
        has_api_access=False,
        ad_free=True,
    ),
    ENTERPRISE: TierAccess(
        max_daily_articles=-1,
        has_stock_tracking=True,
        has_market_intel=True,
        has_resource_exchange=True,
        has_ai_opportunities=True,
        has_alerts=True,
        has_api_access=True,
        ad_free=True,
    ),
}

# Modules not listed here are open to every tier
MODULE_REQUIRED_TIER: Dict[str, str] = {
    "resource-exchange": PRO,
    "alerts": PRO,
    "ai-insights": PRO,
    "export": PRO,
    "business-opportunities": ENTERPRISE,
    "spectrum-tracker": ENTERPRISE,
    "space-insurance": ENTERPRISE,
    "compliance": ENTERPRISE,
    "orbital-services": ENTERPRISE,
    "api-access": ENTERPRISE,
    "deal-flow": ENTERPRISE,
    "intel-reports": ENTERPRISE,
    "supply-chain-map": ENTERPRISE,
    "regulatory-calendar": ENTERPRISE,
    "executive-moves": ENTERPRISE,
    "investment-thesis": ENTERPRISE,
    "deal-rooms": ENTERPRISE,
    "funding-tracker": ENTERPRISE,
    "customer-discovery": ENTERPRISE,
}


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    name: str
    price: float
    price_yearly: float
    features: List[str] = field(default_factory=list)
    highlighted: bool = False


SUBSCRIPTION_PLANS: List[SubscriptionPlan] = [
    SubscriptionPlan(
        id=FREE,
        name="Explorer",
        price=0,
        price_yearly=0,
        features=[
            "Browse news by category",
            "Mission Control countdown",
            "Basic news feed",
            "Limited to 25 articles/day",
            "Community support",
        ],
    ),
    SubscriptionPlan(
        id=PRO,
        name="Professional",
        price=9.99,
        price_yearly=99,
        highlighted=True,
        features=[
            "Everything in Explorer",
            "Unlimited article access",
            "Real-time stock tracking",
            "Market Intel dashboard",
            "Resource Exchange calculator",
            "Price alerts & notifications",
            "Ad-free experience",
            "Priority support",
        ],
    ),
    SubscriptionPlan(
        id=ENTERPRISE,
        name="Enterprise",
        price=49.99,
        price_yearly=499,
        features=[
            "Everything in Professional",
            "AI-powered opportunities",
            "Government contract alerts",
            "Custom watchlists",
            "API access",
            "Team collaboration",
            "Dedicated account manager",
            "Custom integrations",
        ],
    ),
]


def normalize_tier(tier: Optional[str]) -> str:
    """Unknown or missing tiers are treated as free."""
    return tier if tier in TIER_ACCESS else FREE


def can_access_feature(tier: Optional[str], feature: str) -> bool:
    """True when `feature` is enabled (or unlimited) for `tier`."""
    access = TIER_ACCESS[normalize_tier(tier)]
    value = getattr(access, feature, None)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return value == -1 or value > 0


def get_required_tier_for_module(module_id: str) -> Optional[str]:
    """Required tier for a gated module, or None for free / unknown modules."""
    return MODULE_REQUIRED_TIER.get(module_id)


def tier_at_least(tier: Optional[str], required: str) -> bool:
    return _TIER_RANK[normalize_tier(tier)] >= _TIER_RANK[required]


def can_access_module(tier: Optional[str], module_id: str) -> bool:
    required = get_required_tier_for_module(module_id)
    if required is None:
        return True
    return tier_at_least(tier, required)


def is_trial_active(trial_ends_at: Optional[datetime]) -> bool:
    if trial_ends_at is None:
        return False
    if trial_ends_at.tzinfo is None:
        trial_ends_at = trial_ends_at.replace(tzinfo=timezone.utc)
    return trial_ends_at > datetime.now(timezone.utc)


def effective_tier(
    subscription_tier: Optional[str],
    trial_tier: Optional[str] = None,
    trial_ends_at: Optional[datetime] = None,
) -> str:
    """
    Tier used for access checks.

    While a trial runs the higher of the paid tier and the trial tier wins,
    so a trial never downgrades a paying account. A trial needs both a tier
    and an end date.
    """
    tier = normalize_tier(subscription_tier)
    if trial_tier is None or not is_trial_active(trial_ends_at):
        return tier
    trial = normalize_tier(trial_tier)
    return trial if _TIER_RANK[trial] > _TIER_RANK[tier] else tier
