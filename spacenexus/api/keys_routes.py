"""
API Key Routes
Self-service management of `snx_` keys for the /api/v1 surface.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacenexus.api.deps import require_feature
from spacenexus.core.database import get_db
from spacenexus.core.errors import forbidden_error, not_found_error, success_response
from spacenexus.models.schemas import ApiKeyCreate
from spacenexus.models.tables import ApiKey, User, to_naive_utc
from spacenexus.services.api_keys import issue_api_key, limits_for, list_api_keys, revoke_api_key

router = APIRouter(prefix="/api/keys", tags=["api-keys"])

require_api_access = require_feature("has_api_access")


def _key_dict(key: ApiKey) -> dict:
    limits = limits_for(key.tier)
    return {
        "id": key.id,
        "name": key.name,
        "keyPrefix": key.key_prefix,
        "tier": key.tier,
        "isActive": key.is_active,
        "limits": {"monthly": limits.monthly, "perMinute": limits.per_minute},
        "lastUsedAt": key.last_used_at,
        "expiresAt": key.expires_at,
        "revokedAt": key.revoked_at,
        "createdAt": key.created_at,
    }


@router.get("")
def get_keys(user: User = Depends(require_api_access), db: Session = Depends(get_db)):
    keys = list_api_keys(db, user.id)
    return success_response({"keys": [_key_dict(k) for k in keys], "total": len(keys)})


@router.post("")
def create_key(
    body: ApiKeyCreate,
    user: User = Depends(require_api_access),
    db: Session = Depends(get_db),
):
    if body.tier != "developer" and not user.is_admin:
        raise forbidden_error("Only administrators can issue keys above the developer tier")

    expires_at = to_naive_utc(body.expiresAt) if body.expiresAt else None
    key, raw_key = issue_api_key(db, user.id, body.name, tier=body.tier, expires_at=expires_at)
    data = _key_dict(key)
    data["key"] = raw_key
    return success_response(data, status_code=201)


@router.delete("/{key_id}")
def delete_key(
    key_id: str,
    user: User = Depends(require_api_access),
    db: Session = Depends(get_db),
):
    key = db.get(ApiKey, key_id)
    if key is None:
        raise not_found_error("API key")
    if key.user_id != user.id and not user.is_admin:
        raise forbidden_error()
    return success_response(_key_dict(revoke_api_key(db, key)))
