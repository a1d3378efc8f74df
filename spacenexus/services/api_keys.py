"""
Public API Keys
===============
Issuing, hashing and authenticating `snx_` keys for the /api/v1 surface.

Only the SHA-256 hash of a key is stored; the raw key is shown once at
creation. Each request is checked against the key tier's monthly quota
(counted from the first of the month, UTC) and per-minute quota (last 60 s),
then logged to api_usage_logs.
"""
import hashlib
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from spacenexus.core.context import get_request_id
from spacenexus.core.database import get_db
from spacenexus.core.errors import ApiError, ErrorCodes, rate_limited_error, unauthorized_error
from spacenexus.models.tables import ApiKey, ApiUsageLog, utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "snx_"


@dataclass(frozen=True)
class ApiRateLimit:
    monthly: int      # -1 = unlimited
    per_minute: int


API_RATE_LIMITS: Dict[str, ApiRateLimit] = {
    "developer": ApiRateLimit(monthly=5_000, per_minute=60),
    "business": ApiRateLimit(monthly=50_000, per_minute=300),
    "enterprise": ApiRateLimit(monthly=-1, per_minute=1_000),
}
API_TIERS = tuple(API_RATE_LIMITS)


@dataclass
class AuthenticatedKey:
    id: str
    user_id: str
    name: str
    tier: str
    request_id: str


def generate_api_key() -> str:
    return KEY_PREFIX + secrets.token_urlsafe(32)


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def limits_for(tier: str) -> ApiRateLimit:
    return API_RATE_LIMITS.get(tier, API_RATE_LIMITS["developer"])


def issue_api_key(db: Session, user_id: str, name: str, tier: str = "developer",
                  expires_at: Optional[datetime] = None):
    """Create a key. Returns (row, raw_key); the raw key is not recoverable later."""
    raw_key = generate_api_key()
    row = ApiKey(
        user_id=user_id,
        name=name,
        key_hash=hash_api_key(raw_key),
        key_prefix=raw_key[:12],
        tier=tier,
        expires_at=expires_at,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(f"[API-KEYS] Issued key {row.key_prefix}... tier={tier} user={user_id}")
    return row, raw_key


def list_api_keys(db: Session, user_id: str) -> List[ApiKey]:
    return (
        db.query(ApiKey)
        .filter(ApiKey.user_id == user_id)
        .order_by(ApiKey.created_at.desc())
        .all()
    )


def revoke_api_key(db: Session, key: ApiKey) -> ApiKey:
    key.is_active = False
    key.revoked_at = utcnow()
    db.commit()
    logger.info(f"[API-KEYS] Revoked key {key.key_prefix}...")
    return key


def extract_api_key(request: Request) -> Optional[str]:
    """`Authorization: Bearer snx_...` wins over `X-API-Key`."""
    auth = request.headers.get("authorization", "")
    if auth.startswith("Bearer " + KEY_PREFIX):
        return auth[len("Bearer "):]
    return request.headers.get("x-api-key")


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _next_month(month_start: datetime) -> datetime:
    if month_start.month == 12:
        return month_start.replace(year=month_start.year + 1, month=1)
    return month_start.replace(month=month_start.month + 1)


def _usage_count(db: Session, key_id: str, since: datetime) -> int:
    return (
        db.query(ApiUsageLog)
        .filter(ApiUsageLog.api_key_id == key_id, ApiUsageLog.created_at >= since)
        .count()
    )


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else None)


def authenticate_api_key(request: Request, db: Session = Depends(get_db)) -> AuthenticatedKey:
    """FastAPI dependency guarding the /api/v1 routes."""
    started = time.perf_counter()
    request_id = get_request_id() or ""

    raw_key = extract_api_key(request)
    if not raw_key or not raw_key.startswith(KEY_PREFIX):
        raise unauthorized_error(
            "Missing or invalid API key. Provide a valid key via "
            "Authorization: Bearer snx_... or X-API-Key header."
        )

    key = db.query(ApiKey).filter(ApiKey.key_hash == hash_api_key(raw_key)).first()
    if key is None:
        raise unauthorized_error("Invalid API key.")
    if not key.is_active or key.revoked_at is not None:
        raise unauthorized_error("API key has been revoked.")

    now = utcnow()
    if key.expires_at is not None and now > key.expires_at:
        raise ApiError(ErrorCodes.TOKEN_EXPIRED, "API key has expired.", 401)

    limits = limits_for(key.tier)

    if limits.monthly > 0:
        month_start = _month_start(now)
        if _usage_count(db, key.id, month_start) >= limits.monthly:
            reset = int((_next_month(month_start) - now).total_seconds()) + 1
            logger.info(f"[API-KEYS] Monthly quota exhausted for {key.key_prefix}...")
            raise rate_limited_error(
                retry_after=reset,
                message=(
                    f"Monthly API limit exceeded ({limits.monthly} calls/month). "
                    "Resets at the start of next month."
                ),
                headers={
                    "X-RateLimit-Limit": str(limits.monthly),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset),
                },
            )

    if _usage_count(db, key.id, now - timedelta(seconds=60)) >= limits.per_minute:
        raise rate_limited_error(
            retry_after=60,
            message=(
                f"Per-minute rate limit exceeded ({limits.per_minute} calls/minute). "
                "Please slow down."
            ),
            headers={
                "X-RateLimit-Limit": str(limits.per_minute),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": "60",
            },
        )

    try:
        db.add(ApiUsageLog(
            api_key_id=key.id,
            endpoint=request.url.path,
            method=request.method,
            status_code=200,
            response_time_ms=int((time.perf_counter() - started) * 1000),
            ip_address=_client_ip(request),
            user_agent=(request.headers.get("user-agent") or "")[:512] or None,
        ))
        key.last_used_at = now
        db.commit()
    except Exception as e:
        # Usage logging is best-effort
        db.rollback()
        logger.warning(f"[API-KEYS] Failed to log API usage: {e}")

    return AuthenticatedKey(
        id=key.id,
        user_id=key.user_id,
        name=key.name,
        tier=key.tier,
        request_id=request_id,
    )
