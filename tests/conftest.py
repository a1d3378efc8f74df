"""
Shared fixtures: an isolated in-memory database per test, seeded users and
an active ad campaign, and a TestClient wired to that database.
"""
import os
from datetime import timedelta

# Must be set before spacenexus.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)
os.environ["ADMIN_TOKEN"] = "test-admin-token"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spacenexus.core.database import get_db, init_db
from spacenexus.models.tables import AdCampaign, AdPlacement, Advertiser, User, utcnow
from spacenexus.services.api_cache import get_api_cache
from spacenexus.services.circuit_breaker_service import clear_registry

ADMIN_TOKEN = "test-admin-token"


def auth(user):
    """Gateway identity header for `user`."""
    return {"X-User-Id": user.id}


@pytest.fixture(autouse=True)
def _reset_process_state():
    clear_registry()
    get_api_cache().clear()
    yield
    clear_registry()
    get_api_cache().clear()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory, monkeypatch):
    from spacenexus.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    monkeypatch.setattr("spacenexus.services.webhook_dispatcher.SessionLocal", session_factory)
    monkeypatch.setattr("spacenexus.main.SessionLocal", session_factory)
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, tier="free", is_admin=False, trial_tier=None, trial_ends_at=None):
    user = User(email=email, name=email.split("@")[0], subscription_tier=tier,
                is_admin=is_admin, trial_tier=trial_tier, trial_ends_at=trial_ends_at)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def free_user(db):
    return make_user(db, "free@example.com")


@pytest.fixture
def pro_user(db):
    return make_user(db, "pro@example.com", tier="pro")


@pytest.fixture
def enterprise_user(db):
    return make_user(db, "enterprise@example.com", tier="enterprise")


@pytest.fixture
def admin_user(db):
    return make_user(db, "admin@example.com", is_admin=True)


@pytest.fixture
def advertiser_user(db):
    return make_user(db, "ads@orbitalco.example")


@pytest.fixture
def advertiser(db, advertiser_user):
    adv = Advertiser(user_id=advertiser_user.id, company_name="Orbital Co",
                     logo_url="https://orbitalco.example/logo.png", status="approved")
    db.add(adv)
    db.commit()
    db.refresh(adv)
    return adv


def make_campaign(db, advertiser, position="sidebar", **overrides):
    now = utcnow()
    fields = dict(
        advertiser_id=advertiser.id,
        name="Launch Week",
        type="banner",
        status="active",
        budget=100.0,
        spent=0.0,
        cpm_rate=10.0,
        cpc_rate=0.5,
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=30),
        target_modules=[],
        target_tiers=[],
        priority=5,
    )
    fields.update(overrides)
    campaign = AdCampaign(**fields)
    campaign.placements.append(AdPlacement(
        position=position,
        format="banner",
        title="Ride to orbit",
        link_url="https://orbitalco.example",
        cta_text="Learn More",
    ))
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return campaign


@pytest.fixture
def campaign(db, advertiser):
    return make_campaign(db, advertiser)
