"""
Ad Server
=========
Placement selection, impression/click/conversion recording, and campaign
analytics for the self-serve advertising product.

Selection order for a page position:
  1. Ad-free tiers (pro / enterprise) never see ads
  2. Active placements of running campaigns that target the module
  3. Total budget and daily budget filters
  4. Priority (desc), then spend ratio (asc) so under-delivered
     campaigns catch up
Ad serving never breaks a page: failures are logged and yield no ad.
"""
import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from spacenexus.core.errors import (
    constrain_offset,
    constrain_pagination,
    forbidden_error,
    not_found_error,
    validation_error,
)
from spacenexus.core.subscription import can_access_feature, effective_tier
from spacenexus.models.schemas import CampaignCreate, CampaignUpdate, ServedAd
from spacenexus.models.tables import (
    AdCampaign,
    AdImpression,
    AdPlacement,
    Advertiser,
    User,
    to_naive_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

ANALYTICS_WINDOW_DAYS = 30

# Allowed status moves for PATCH /api/ads/campaigns/{id}
VALID_TRANSITIONS: Dict[str, List[str]] = {
    'draft': ['pending_review'],
    'pending_review': ['active', 'rejected'],
    'active': ['paused', 'completed'],
    'paused': ['active', 'completed'],
    'completed': [],
    'rejected': ['draft'],
}


def _start_of_day(now: datetime) -> datetime:
    return datetime.combine(now.date(), time.min)


def _spend_ratio(campaign: AdCampaign) -> float:
    return campaign.spent / campaign.budget if campaign.budget else 1.0


def _user_tier(db: Session, user_id: str) -> Optional[str]:
    user = db.get(User, user_id)
    if user is None:
        return None
    return effective_tier(user.subscription_tier, user.trial_tier, user.trial_ends_at)


def _daily_spent(db: Session, campaign_id: str, since: datetime) -> float:
    total = (
        db.query(func.coalesce(func.sum(AdImpression.revenue), 0.0))
        .filter(AdImpression.campaign_id == campaign_id, AdImpression.created_at >= since)
        .scalar()
    )
    return float(total or 0.0)


def _is_eligible(db: Session, campaign: AdCampaign, module: Optional[str],
                 tier: Optional[str], start_of_day: datetime) -> bool:
    # An empty target list means every module / every tier
    if module and campaign.target_modules and module not in campaign.target_modules:
        return False
    if tier and campaign.target_tiers and tier not in campaign.target_tiers:
        return False
    if campaign.spent >= campaign.budget:
        return False
    if campaign.daily_budget:
        if _daily_spent(db, campaign.id, start_of_day) >= campaign.daily_budget:
            return False
    return True


def select_ad(
    db: Session,
    position: str,
    module: Optional[str] = None,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    user_tier: Optional[str] = None,
) -> Optional[ServedAd]:
    """Pick the best placement for `position`, or None."""
    try:
        if user_tier is None and user_id:
            user_tier = _user_tier(db, user_id)
        if user_tier and can_access_feature(user_tier, 'ad_free'):
            return None

        now = utcnow()
        placements = (
            db.query(AdPlacement)
            .join(AdCampaign, AdPlacement.campaign_id == AdCampaign.id)
            .options(joinedload(AdPlacement.campaign).joinedload(AdCampaign.advertiser))
            .filter(
                AdPlacement.is_active.is_(True),
                AdPlacement.position == position,
                AdCampaign.status == 'active',
                AdCampaign.start_date <= now,
                AdCampaign.end_date >= now,
            )
            .all()
        )
        if not placements:
            return None

        start_of_day = _start_of_day(now)
        eligible = [
            p for p in placements
            if _is_eligible(db, p.campaign, module, user_tier, start_of_day)
        ]
        if not eligible:
            return None

        eligible.sort(key=lambda p: (-p.campaign.priority, _spend_ratio(p.campaign)))
        selected = eligible[0]
        advertiser = selected.campaign.advertiser

        return ServedAd(
            placementId=selected.id,
            campaignId=selected.campaign_id,
            position=selected.position,
            format=selected.format,
            title=selected.title,
            description=selected.description,
            imageUrl=selected.image_url,
            linkUrl=selected.link_url,
            ctaText=selected.cta_text,
            advertiserName=advertiser.company_name,
            advertiserLogo=advertiser.logo_url,
        )
    except Exception as e:
        logger.error(f"[ADS] Error selecting ad for position={position} module={module}: {e}")
        return None


def record_impression(
    db: Session,
    campaign_id: str,
    placement_id: str,
    impression_type: str,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    module: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    raise_errors: bool = False,
) -> Optional[AdImpression]:
    """
    Record an impression, click or conversion and charge the campaign.

    Revenue: impression -> cpm_rate / 1000, click -> cpc_rate (if set),
    conversion -> 0. Revenue is capped at the remaining budget; the campaign
    completes once its budget is exhausted.

    Returns the stored row, or None when the campaign is missing / not
    active or the write failed. With `raise_errors` a failed write is
    re-raised after the rollback instead.
    """
    try:
        campaign = db.get(AdCampaign, campaign_id)
        if campaign is None or campaign.status != 'active':
            return None

        revenue = 0.0
        if impression_type == 'impression':
            revenue = campaign.cpm_rate / 1000
        elif impression_type == 'click' and campaign.cpc_rate:
            revenue = campaign.cpc_rate

        new_spent = campaign.spent + revenue
        if new_spent > campaign.budget:
            revenue = max(0.0, campaign.budget - campaign.spent)

        impression = AdImpression(
            campaign_id=campaign_id,
            placement_id=placement_id,
            user_id=user_id or None,
            session_id=session_id or None,
            type=impression_type,
            module=module or None,
            ip_address=ip_address or None,
            user_agent=user_agent or None,
            revenue=revenue,
        )
        db.add(impression)
        campaign.spent = campaign.spent + revenue
        if new_spent >= campaign.budget:
            campaign.status = 'completed'
            logger.info(f"[ADS] Campaign {campaign_id} budget exhausted, marked completed")
        db.commit()

        logger.debug(
            f"[ADS] Recorded {impression_type} campaign={campaign_id} "
            f"placement={placement_id} revenue={revenue:.4f} module={module}"
        )
        return impression
    except Exception as e:
        db.rollback()
        logger.error(f"[ADS] Error recording {impression_type} for campaign {campaign_id}: {e}")
        if raise_errors:
            raise
        return None


def _type_stats(db: Session, campaign_id: str, impression_type: str) -> Tuple[int, float]:
    count, revenue = (
        db.query(func.count(AdImpression.id), func.coalesce(func.sum(AdImpression.revenue), 0.0))
        .filter(AdImpression.campaign_id == campaign_id, AdImpression.type == impression_type)
        .one()
    )
    return int(count), float(revenue)


def get_campaign_analytics(db: Session, campaign_id: str) -> Optional[Dict[str, Any]]:
    """Delivery metrics for one campaign, or None when it does not exist."""
    try:
        campaign = db.get(AdCampaign, campaign_id)
        if campaign is None:
            return None

        impressions, impression_revenue = _type_stats(db, campaign_id, 'impression')
        clicks, click_revenue = _type_stats(db, campaign_id, 'click')
        conversions, _ = _type_stats(db, campaign_id, 'conversion')
        ctr = (clicks / impressions) * 100 if impressions > 0 else 0

        since = utcnow() - timedelta(days=ANALYTICS_WINDOW_DAYS)
        by_type = (
            db.query(AdImpression.type, func.count(AdImpression.id), func.sum(AdImpression.revenue))
            .filter(AdImpression.campaign_id == campaign_id, AdImpression.created_at >= since)
            .group_by(AdImpression.type)
            .all()
        )
        by_module = (
            db.query(AdImpression.module, func.count(AdImpression.id), func.sum(AdImpression.revenue))
            .filter(AdImpression.campaign_id == campaign_id, AdImpression.module.isnot(None))
            .group_by(AdImpression.module)
            .all()
        )

        return {
            'campaign': {
                'id': campaign.id,
                'name': campaign.name,
                'type': campaign.type,
                'status': campaign.status,
                'budget': campaign.budget,
                'spent': campaign.spent,
                'cpmRate': campaign.cpm_rate,
                'cpcRate': campaign.cpc_rate,
                'startDate': campaign.start_date.isoformat(),
                'endDate': campaign.end_date.isoformat(),
                'advertiserName': campaign.advertiser.company_name,
            },
            'metrics': {
                'impressions': impressions,
                'clicks': clicks,
                'conversions': conversions,
                'ctr': round(ctr, 2),
                'totalSpend': campaign.spent,
                'impressionRevenue': impression_revenue,
                'clickRevenue': click_revenue,
                'budgetRemaining': campaign.budget - campaign.spent,
                'budgetUtilization': round(_spend_ratio(campaign) * 100, 2),
            },
            'byType': [
                {'type': t, 'count': c, 'revenue': float(r or 0)} for t, c, r in by_type
            ],
            'byModule': [
                {'module': m, 'count': c, 'revenue': float(r or 0)} for m, c, r in by_module
            ],
            'placements': [
                {'id': p.id, 'position': p.position, 'format': p.format}
                for p in campaign.placements
            ],
        }
    except Exception as e:
        logger.error(f"[ADS] Error fetching analytics for campaign {campaign_id}: {e}")
        return None


# ── Campaign management ─────────────────────────────────────────────────────

def get_advertiser(db: Session, user_id: str, require_approved: bool = False) -> Advertiser:
    advertiser = db.query(Advertiser).filter(Advertiser.user_id == user_id).first()
    if advertiser is None:
        raise forbidden_error("You must register as an advertiser first")
    if require_approved and advertiser.status != 'approved':
        raise forbidden_error("Your advertiser account is not yet approved")
    return advertiser


def list_campaigns(
    db: Session,
    user_id: str,
    status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Dict[str, Any]:
    advertiser = get_advertiser(db, user_id)
    limit = constrain_pagination(limit)
    offset = constrain_offset(offset)

    query = db.query(AdCampaign).filter(AdCampaign.advertiser_id == advertiser.id)
    if status:
        query = query.filter(AdCampaign.status == status)

    total = query.count()
    campaigns = (
        query.order_by(AdCampaign.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        'campaigns': campaigns,
        'total': total,
        'hasMore': offset + len(campaigns) < total,
    }


def create_campaign(db: Session, user_id: str, data: CampaignCreate) -> AdCampaign:
    advertiser = get_advertiser(db, user_id, require_approved=True)

    start_date, end_date = to_naive_utc(data.startDate), to_naive_utc(data.endDate)

    if end_date <= start_date:
        raise validation_error("End date must be after start date")
    if start_date < utcnow() - timedelta(hours=24):
        raise validation_error("Start date cannot be in the past")

    campaign = AdCampaign(
        advertiser_id=advertiser.id,
        name=data.name,
        type=data.type,
        status='draft',
        budget=data.budget,
        daily_budget=data.dailyBudget,
        cpm_rate=data.cpmRate,
        cpc_rate=data.cpcRate,
        start_date=start_date,
        end_date=end_date,
        target_modules=list(data.targetModules),
        target_tiers=list(data.targetTiers),
        priority=data.priority,
    )
    for p in data.placements:
        campaign.placements.append(AdPlacement(
            position=p.position,
            format=p.format,
            title=p.title,
            description=p.description,
            image_url=p.imageUrl,
            link_url=p.linkUrl,
            cta_text=p.ctaText or "Learn More",
        ))

    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    logger.info(
        f"[ADS] Campaign created id={campaign.id} advertiser={advertiser.id} "
        f"type={campaign.type} budget={campaign.budget}"
    )
    return campaign


def get_owned_campaign(db: Session, campaign_id: str, user: User) -> AdCampaign:
    """The campaign, if `user` owns it or is an admin."""
    campaign = db.get(AdCampaign, campaign_id)
    if campaign is None:
        raise not_found_error("Campaign")
    if campaign.advertiser.user_id != user.id and not user.is_admin:
        raise forbidden_error()
    return campaign


def update_campaign(db: Session, campaign: AdCampaign, data: CampaignUpdate) -> AdCampaign:
    updates = data.model_dump(exclude_unset=True)

    if data.status and data.status != campaign.status:
        allowed = VALID_TRANSITIONS.get(campaign.status, [])
        if data.status not in allowed:
            raise validation_error(
                f'Cannot transition from "{campaign.status}" to "{data.status}". '
                f'Allowed: {", ".join(allowed) or "none"}'
            )

    if data.budget is not None and data.budget < campaign.spent:
        raise validation_error(
            f"Budget cannot be less than amount already spent (${campaign.spent:.2f})"
        )

    budget = data.budget if data.budget is not None else campaign.budget
    daily_budget = data.dailyBudget if 'dailyBudget' in updates else campaign.daily_budget
    if daily_budget is not None and daily_budget > budget:
        raise validation_error("dailyBudget cannot exceed budget")

    if data.endDate is not None and to_naive_utc(data.endDate) <= campaign.start_date:
        raise validation_error("End date must be after start date")

    if data.name:
        campaign.name = data.name
    if data.status:
        campaign.status = data.status
    if data.budget is not None:
        campaign.budget = data.budget
    if 'dailyBudget' in updates:
        campaign.daily_budget = data.dailyBudget
    if data.endDate is not None:
        campaign.end_date = to_naive_utc(data.endDate)
    if data.priority is not None:
        campaign.priority = data.priority

    db.commit()
    db.refresh(campaign)
    logger.info(f"[ADS] Campaign updated id={campaign.id} fields={sorted(updates)}")
    return campaign


def delete_campaign(db: Session, campaign: AdCampaign) -> str:
    """Drafts and rejected campaigns are deleted; running ones are completed."""
    if campaign.status in ('draft', 'rejected'):
        campaign_id = campaign.id
        db.delete(campaign)
        db.commit()
        logger.info(f"[ADS] Campaign deleted id={campaign_id}")
        return "Campaign deleted successfully"

    campaign.status = 'completed'
    db.commit()
    logger.info(f"[ADS] Campaign cancelled id={campaign.id}")
    return "Campaign cancelled and marked as completed"
