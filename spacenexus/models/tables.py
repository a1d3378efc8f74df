"""
ORM Tables
==========
All timestamps are stored as naive UTC (`utcnow()`), which keeps SQLite and
PostgreSQL comparisons consistent.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from spacenexus.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC first; naive ones are taken as UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


# ── Accounts ───────────────────────────────────────────────────────────────

class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    subscription_tier = Column(String(20), nullable=False, default="free")
    trial_tier = Column(String(20), nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# ── Advertising ────────────────────────────────────────────────────────────

class Advertiser(Base):
    __tablename__ = "advertisers"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), unique=True, nullable=False)
    company_name = Column(String(255), nullable=False)
    logo_url = Column(String(1024))
    status = Column(String(20), nullable=False, default="pending")  # pending | approved | rejected
    created_at = Column(DateTime, nullable=False, default=utcnow)

    campaigns = relationship("AdCampaign", back_populates="advertiser")


class AdCampaign(Base):
    __tablename__ = "ad_campaigns"

    id = Column(String(32), primary_key=True, default=new_id)
    advertiser_id = Column(String(32), ForeignKey("advertisers.id"), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(30), nullable=False, default="banner")
    status = Column(String(20), nullable=False, default="draft")  # draft | active | paused | completed
    budget = Column(Float, nullable=False)
    daily_budget = Column(Float, nullable=True)
    spent = Column(Float, nullable=False, default=0.0)
    cpm_rate = Column(Float, nullable=False, default=0.0)
    cpc_rate = Column(Float, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    target_modules = Column(JSON, nullable=False, default=list)
    target_tiers = Column(JSON, nullable=False, default=list)
    priority = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    advertiser = relationship("Advertiser", back_populates="campaigns")
    placements = relationship(
        "AdPlacement", back_populates="campaign", cascade="all, delete-orphan"
    )
    impressions = relationship(
        "AdImpression", back_populates="campaign", cascade="all, delete-orphan"
    )


class AdPlacement(Base):
    __tablename__ = "ad_placements"

    id = Column(String(32), primary_key=True, default=new_id)
    campaign_id = Column(String(32), ForeignKey("ad_campaigns.id"), nullable=False)
    position = Column(String(50), nullable=False)
    format = Column(String(30), nullable=False)
    title = Column(String(255))
    description = Column(Text)
    image_url = Column(String(1024))
    link_url = Column(String(1024), nullable=False)
    cta_text = Column(String(100))
    is_active = Column(Boolean, nullable=False, default=True)

    campaign = relationship("AdCampaign", back_populates="placements")


class AdImpression(Base):
    __tablename__ = "ad_impressions"
    __table_args__ = (
        Index("ix_ad_impressions_campaign_created", "campaign_id", "created_at"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    campaign_id = Column(String(32), ForeignKey("ad_campaigns.id"), nullable=False)
    placement_id = Column(String(32), ForeignKey("ad_placements.id"), nullable=False)
    user_id = Column(String(32), nullable=True)
    session_id = Column(String(100), nullable=True)
    type = Column(String(20), nullable=False)  # impression | click | conversion
    module = Column(String(100), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    revenue = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    campaign = relationship("AdCampaign", back_populates="impressions")


# ── Outbound webhooks ──────────────────────────────────────────────────────

class WebhookSubscription(Base):
    __tablename__ = "webhook_subscriptions"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    url = Column(String(2048), nullable=False)
    secret = Column(String(128), nullable=False)
    events = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    failure_count = Column(Integer, nullable=False, default=0)
    last_delivery_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# ── Public API keys ────────────────────────────────────────────────────────

class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    name = Column(String(255), nullable=False)
    key_hash = Column(String(64), unique=True, nullable=False)
    key_prefix = Column(String(16), nullable=False)
    tier = Column(String(20), nullable=False, default="developer")
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ApiUsageLog(Base):
    __tablename__ = "api_usage_logs"
    __table_args__ = (
        Index("ix_api_usage_key_created", "api_key_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    api_key_id = Column(String(32), ForeignKey("api_keys.id"), nullable=False)
    endpoint = Column(String(512), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=False, default=200)
    response_time_ms = Column(Integer, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# ── Offline sync queue ─────────────────────────────────────────────────────

class SyncQueueItem(Base):
    __tablename__ = "sync_queue"
    __table_args__ = (
        Index("ix_sync_queue_created", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    action_type = Column(String(100), nullable=False)
    payload = Column(Text, nullable=False)
    retries = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# ── Data freshness ─────────────────────────────────────────────────────────

class ModuleFreshness(Base):
    __tablename__ = "module_freshness"

    module = Column(String(100), primary_key=True)
    last_refreshed = Column(DateTime, nullable=True)
    refresh_count = Column(Integer, nullable=False, default=0)
    last_duration_ms = Column(Integer, nullable=True)
