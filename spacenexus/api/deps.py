"""
Route dependencies: caller identity and access checks.

Session authentication happens at the gateway, which forwards the
authenticated user id in `X-User-Id`. Admin-only routes also accept the
shared `X-Admin-Token` for operator scripts.
"""
import hmac
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from spacenexus.core.config import ADMIN_TOKEN
from spacenexus.core.database import get_db
from spacenexus.core.errors import ApiError, ErrorCodes, forbidden_error, unauthorized_error
from spacenexus.core.subscription import (
    can_access_feature,
    can_access_module,
    effective_tier,
    get_required_tier_for_module,
)
from spacenexus.models.tables import User


def get_optional_user(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[User]:
    if not x_user_id:
        return None
    return db.get(User, x_user_id)


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise unauthorized_error()
    return user


def user_tier(user: Optional[User]) -> str:
    if user is None:
        return "free"
    return effective_tier(user.subscription_tier, user.trial_tier, user.trial_ends_at)


def _admin_token_matches(token: Optional[str]) -> bool:
    return bool(ADMIN_TOKEN and token and hmac.compare_digest(token, ADMIN_TOKEN))


def require_admin(
    x_admin_token: Optional[str] = Header(None),
    user: Optional[User] = Depends(get_optional_user),
) -> Optional[User]:
    """Admin user, or None when authorized by token."""
    if _admin_token_matches(x_admin_token):
        return user
    if user is None:
        raise unauthorized_error()
    if not user.is_admin:
        raise forbidden_error("Admin access required")
    return user


def require_feature(feature: str):
    """Dependency factory: the caller's tier must enable `feature`."""

    def _check(user: User = Depends(get_current_user)) -> User:
        if user.is_admin or can_access_feature(user_tier(user), feature):
            return user
        raise ApiError(
            ErrorCodes.INSUFFICIENT_PERMISSIONS,
            "Your subscription does not include this feature",
            403,
        )

    return _check


def require_module(module_id: str):
    """Dependency factory: the caller's tier must unlock `module_id`."""

    def _check(user: User = Depends(get_current_user)) -> User:
        if user.is_admin or can_access_module(user_tier(user), module_id):
            return user
        required = get_required_tier_for_module(module_id)
        raise ApiError(
            ErrorCodes.INSUFFICIENT_PERMISSIONS,
            f"This module requires a {required} subscription",
            403,
            {"module": module_id, "requiredTier": required},
        )

    return _check
