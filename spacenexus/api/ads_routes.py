"""
Advertising Routes
==================
Ad serving and event tracking for pages, plus self-serve campaign
management for approved advertisers.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from spacenexus.api.deps import get_current_user, get_optional_user, user_tier
from spacenexus.core.database import get_db
from spacenexus.core.errors import not_found_error, success_response
from spacenexus.models.schemas import (
    AdEventRequest,
    CampaignCreate,
    CampaignOut,
    CampaignStatus,
    CampaignUpdate,
)
from spacenexus.models.tables import User
from spacenexus.services import ad_server

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/ads", tags=["ads"])


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.get("/serve")
def serve_ad(
    position: str = Query(..., min_length=1, max_length=50),
    module: Optional[str] = Query(None, max_length=100),
    session_id: Optional[str] = Query(None, alias="sessionId", max_length=100),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Best ad for a page position; `data` is null when nothing should show."""
    ad = ad_server.select_ad(
        db,
        position=position,
        module=module,
        user_id=user.id if user else None,
        session_id=session_id,
        user_tier=user_tier(user) if user else None,
    )
    return success_response(ad)


@router.post("/track")
def track_ad_event(
    body: AdEventRequest,
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    impression = ad_server.record_impression(
        db,
        campaign_id=body.campaignId,
        placement_id=body.placementId,
        impression_type=body.type,
        user_id=user.id if user else None,
        session_id=body.sessionId,
        module=body.module,
        ip_address=_client_ip(request),
        user_agent=(request.headers.get("user-agent") or "")[:512] or None,
    )
    return success_response({"recorded": impression is not None})


# ── Campaign management ─────────────────────────────────────────────────────

@router.get("/campaigns")
def list_campaigns(
    status: Optional[CampaignStatus] = None,
    limit: int = 20,
    offset: int = 0,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page = ad_server.list_campaigns(db, user.id, status=status, limit=limit, offset=offset)
    return success_response({
        "campaigns": [CampaignOut.model_validate(c) for c in page["campaigns"]],
        "total": page["total"],
        "hasMore": page["hasMore"],
    })


@router.post("/campaigns")
def create_campaign(
    body: CampaignCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = ad_server.create_campaign(db, user.id, body)
    return success_response(CampaignOut.model_validate(campaign), status_code=201)


@router.get("/campaigns/{campaign_id}")
def get_campaign(
    campaign_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = ad_server.get_owned_campaign(db, campaign_id, user)
    analytics = ad_server.get_campaign_analytics(db, campaign_id) or {}
    metrics = analytics.get("metrics", {})

    data = CampaignOut.model_validate(campaign).model_dump(mode="json")
    data["metrics"] = {
        "impressions": metrics.get("impressions", 0),
        "clicks": metrics.get("clicks", 0),
        "conversions": metrics.get("conversions", 0),
        "ctr": metrics.get("ctr", 0),
    }
    return success_response(data)


@router.patch("/campaigns/{campaign_id}")
def update_campaign(
    campaign_id: str,
    body: CampaignUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = ad_server.get_owned_campaign(db, campaign_id, user)
    updated = ad_server.update_campaign(db, campaign, body)
    return success_response(CampaignOut.model_validate(updated))


@router.delete("/campaigns/{campaign_id}")
def delete_campaign(
    campaign_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = ad_server.get_owned_campaign(db, campaign_id, user)
    message = ad_server.delete_campaign(db, campaign)
    return success_response({"message": message})


@router.get("/campaigns/{campaign_id}/analytics")
def campaign_analytics(
    campaign_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ad_server.get_owned_campaign(db, campaign_id, user)
    analytics = ad_server.get_campaign_analytics(db, campaign_id)
    if analytics is None:
        raise not_found_error("Campaign")
    return success_response(analytics)
