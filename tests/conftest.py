import os
from datetime import timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from loyalfy import main  # noqa: F401 (registers every model on Base)
from loyalfy.db import Base, enable_sqlite_savepoints, utcnow
from loyalfy.exceptions import UpstreamCouponError
from loyalfy.models.customer import Customer
from loyalfy.models.merchant import Merchant
from loyalfy.models.reward import Reward


def make_loyalty_settings(**overrides) -> dict:
    settings = {
        "pointsPerCurrencyUnit": 1,
        "rewardThreshold": 100,
        "tierBronze": 0,
        "tierSilver": 1000,
        "tierGold": 5000,
        "tierPlatinum": 15000,
        "purchasePoints": {"enabled": True, "points": 0},
        "welcomePoints": {"enabled": True, "points": 50},
        "birthdayPoints": {"enabled": True, "points": 20},
        "shareReferralPoints": {"enabled": True, "points": 15},
        "ratingProductPoints": {"enabled": True, "points": 5},
        "feedbackShippingPoints": {"enabled": False, "points": 10},
        "purchaseAmountThresholdPoints": {"enabled": False, "thresholdAmount": 500, "points": 50},
    }
    settings.update(overrides)
    return settings


ALL_NOTIFICATIONS = {
    "earnNewPoints": True,
    "earnNewCoupon": True,
    "earnNewCouponForShare": True,
    "birthday": True,
}


class FakeCodeProvider:
    def __init__(self, prefix: str = "TEST"):
        self.prefix = prefix
        self.calls = []

    def create_code(self, db, merchant, reward, *, starts_at, expires_at):
        self.calls.append((reward.id, starts_at, expires_at))
        return f"{self.prefix}{len(self.calls):04d}"


class FailingCodeProvider:
    def create_code(self, db, merchant, reward, *, starts_at, expires_at):
        raise UpstreamCouponError("HTTP 503: upstream unavailable", status_code=503, attempts=3)


class RaisingEmailBackend:
    def send_email(self, recipient, subject, html_body):
        raise ConnectionError("smtp down")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def merchant(db):
    m = Merchant(
        merchant_id="store-1",
        name="Test Store",
        username="teststore",
        installer_email="owner@store.test",
        access_token="token-123",
        loyalty_settings=make_loyalty_settings(),
        notification_settings=dict(ALL_NOTIFICATIONS),
    )
    db.add(m)
    db.commit()
    db.refresh(m)
    return m


@pytest.fixture
def customer(db, merchant):
    c = Customer(
        merchant_id=merchant.id,
        customer_id="cust-1",
        name="Sara",
        email="sara@example.com",
        points=0,
        tier="bronze",
    )
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture
def reward(db, merchant):
    r = Reward(
        merchant_id=merchant.id,
        name="خصم 10%",
        name_en="10% off",
        description="",
        points_required=100,
        reward_type="percentage",
        reward_value=10,
        is_active=True,
        enabled=True,
        valid_from=utcnow() - timedelta(days=1),
    )
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


@pytest.fixture
def code_provider():
    return FakeCodeProvider()
