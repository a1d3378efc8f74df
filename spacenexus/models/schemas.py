"""
Request/Response Models
=======================
Pydantic schemas for the HTTP surface.

Input models validate with field constraints and validators; response models
ignore extra attributes so ORM rows can be passed straight through
`model_validate(..., from_attributes=True)`.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from spacenexus.core.subscription import TIERS

ImpressionType = Literal["impression", "click", "conversion"]
CampaignStatus = Literal["draft", "pending_review", "active", "paused", "completed", "rejected"]
CampaignType = Literal["banner", "native", "sponsored_content", "newsletter", "video"]

WEBHOOK_EVENTS = (
    "launch.upcoming",
    "launch.completed",
    "news.published",
    "company.updated",
    "alert.solar_flare",
    "data.refreshed",
)


# ── Ads ────────────────────────────────────────────────────────────────────

class ServedAd(BaseModel):
    """A placement chosen for a page position."""
    model_config = ConfigDict(extra="ignore")

    placementId: str
    campaignId: str
    position: str
    format: str
    title: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None
    linkUrl: str
    ctaText: Optional[str] = None
    advertiserName: str
    advertiserLogo: Optional[str] = None


class AdEventRequest(BaseModel):
    """Body for POST /api/ads/track and queued `ad.event` actions."""
    campaignId: str = Field(..., min_length=1, max_length=64)
    placementId: str = Field(..., min_length=1, max_length=64)
    type: ImpressionType
    module: Optional[str] = Field(None, max_length=100)
    sessionId: Optional[str] = Field(None, max_length=100)


class PlacementCreate(BaseModel):
    position: str = Field(..., pattern=r'^[a-z][a-z0-9_-]{0,49}$')
    format: str = Field(..., min_length=1, max_length=30)
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    imageUrl: Optional[str] = Field(None, max_length=1024)
    linkUrl: str = Field(..., max_length=1024)
    ctaText: Optional[str] = Field(None, max_length=100)

    @field_validator('linkUrl', 'imageUrl')
    @classmethod
    def validate_url(cls, v):
        if v is not None and not v.startswith(("https://", "http://")):
            raise ValueError("URL must start with http:// or https://")
        return v


class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: CampaignType = "banner"
    budget: float = Field(..., gt=0, le=1_000_000)
    dailyBudget: Optional[float] = Field(None, gt=0)
    cpmRate: float = Field(..., ge=0, le=1000)
    cpcRate: Optional[float] = Field(None, ge=0, le=1000)
    startDate: datetime
    endDate: datetime
    targetModules: List[str] = Field(default_factory=list, max_length=50)
    targetTiers: List[str] = Field(default_factory=list)
    priority: int = Field(5, ge=1, le=10)
    placements: List[PlacementCreate] = Field(default_factory=list, max_length=20)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v.strip() == "":
            raise ValueError("Campaign name cannot be empty or whitespace")
        return v.strip()

    @field_validator('targetTiers')
    @classmethod
    def validate_tiers(cls, v):
        unknown = [t for t in v if t not in TIERS]
        if unknown:
            raise ValueError(f"Unknown subscription tier(s): {', '.join(unknown)}")
        return v

    @model_validator(mode='after')
    def validate_daily_budget(self):
        if self.dailyBudget is not None and self.dailyBudget > self.budget:
            raise ValueError("dailyBudget cannot exceed budget")
        return self


class CampaignUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[CampaignStatus] = None
    priority: Optional[int] = Field(None, ge=1, le=10)
    budget: Optional[float] = Field(None, gt=0, le=1_000_000)
    dailyBudget: Optional[float] = Field(None, gt=0)
    endDate: Optional[datetime] = None


class PlacementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    position: str
    format: str
    is_active: bool


class CampaignOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    name: str
    type: str
    status: str
    budget: float
    daily_budget: Optional[float] = None
    spent: float
    cpm_rate: float
    cpc_rate: Optional[float] = None
    start_date: datetime
    end_date: datetime
    target_modules: List[str] = []
    target_tiers: List[str] = []
    priority: int
    created_at: datetime
    placements: List[PlacementOut] = []


# ── Scoring ────────────────────────────────────────────────────────────────

class CompanyCounts(BaseModel):
    model_config = ConfigDict(extra="ignore")

    products: int = Field(0, ge=0)
    keyPersonnel: int = Field(0, ge=0)
    fundingRounds: int = Field(0, ge=0)
    contracts: int = Field(0, ge=0)
    events: int = Field(0, ge=0)
    newsArticles: int = Field(0, ge=0)
    satelliteAssets: int = Field(0, ge=0)
    partnerships: int = Field(0, ge=0)


class CompanyScoreRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tier: int = Field(3, ge=1, le=3)
    isPublic: bool = False
    totalFunding: Optional[float] = Field(None, ge=0)
    revenueEstimate: Optional[float] = Field(None, ge=0)
    employeeCount: Optional[int] = Field(None, ge=0)
    counts: CompanyCounts = Field(default_factory=CompanyCounts)
    latestFundingDate: Optional[datetime] = None
    foundedYear: Optional[int] = Field(None, ge=1800, le=2100)


class RiskAssessmentRequest(BaseModel):
    sector: str = Field(..., min_length=1, max_length=50)
    activitiesFlags: List[str] = Field(default_factory=list, max_length=50)
    subsector: Optional[str] = Field(None, max_length=100)


# ── Sync queue ─────────────────────────────────────────────────────────────

class QueuedAction(BaseModel):
    type: str = Field(..., min_length=1, max_length=100)
    payload: Dict[str, Any] = Field(default_factory=dict)


class SyncActionsRequest(BaseModel):
    actions: List[QueuedAction] = Field(..., min_length=1, max_length=100)


# ── Webhooks ───────────────────────────────────────────────────────────────

class WebhookCreate(BaseModel):
    url: str = Field(..., max_length=2048)
    events: List[str] = Field(..., min_length=1, max_length=50)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith("https://"):
            raise ValueError("Webhook URL must use https://")
        return v

    @field_validator('events')
    @classmethod
    def validate_events(cls, v):
        unknown = [e for e in v if e not in WEBHOOK_EVENTS]
        if unknown:
            raise ValueError(f"Unknown event type(s): {', '.join(unknown)}")
        return list(dict.fromkeys(v))


class WebhookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    url: str
    events: List[str]
    is_active: bool
    failure_count: int
    last_delivery_at: Optional[datetime] = None
    created_at: datetime


# ── API keys ───────────────────────────────────────────────────────────────

class ApiKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    # Only admins may issue keys above the developer tier
    tier: Literal["developer", "business", "enterprise"] = "developer"
    expiresAt: Optional[datetime] = None


# ── Admin ──────────────────────────────────────────────────────────────────

class DispatchRequest(BaseModel):
    event: str = Field(..., min_length=1, max_length=100)
    data: Dict[str, Any] = Field(default_factory=dict)


class RefreshRequest(BaseModel):
    durationMs: Optional[int] = Field(None, ge=0)
