"""
Subscription Routes
Read-only plan catalogue and tier/module access checks for the caller.
"""
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query

from spacenexus.api.deps import get_optional_user, user_tier
from spacenexus.core.errors import success_response
from spacenexus.core.subscription import (
    SUBSCRIPTION_PLANS,
    TIER_ACCESS,
    can_access_module,
    get_required_tier_for_module,
    is_trial_active,
    normalize_tier,
)
from spacenexus.models.tables import User

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


@router.get("/plans")
async def get_plans():
    return success_response({"plans": [asdict(plan) for plan in SUBSCRIPTION_PLANS]})


@router.get("/access")
def get_access(
    module: Optional[str] = Query(None, max_length=100),
    user: Optional[User] = Depends(get_optional_user),
):
    tier = user_tier(user)
    data = {
        "tier": normalize_tier(user.subscription_tier) if user else "free",
        "effectiveTier": tier,
        "trialTier": user.trial_tier if user else None,
        "trialActive": bool(user and user.trial_tier and is_trial_active(user.trial_ends_at)),
        "features": asdict(TIER_ACCESS[tier]),
    }
    if module:
        data["module"] = {
            "id": module,
            "requiredTier": get_required_tier_for_module(module),
            "hasAccess": can_access_module(tier, module),
        }
    return success_response(data)
