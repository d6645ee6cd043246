import os
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv
import pytest

# Load environment so TEST_DATABASE_URL can be read from .env
load_dotenv()

# Postgres in CI; a throwaway sqlite file otherwise. Must be set before the app
# module builds its engine.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///./test_deals.db")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from deal_redemption.database import Base, build_engine, get_db  # noqa: E402
from deal_redemption.main import app  # noqa: E402
from deal_redemption.models.deal import Deal, DealStatus  # noqa: E402
from deal_redemption.models.membership import UserMembership  # noqa: E402

engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Override the app's DB dependency to use the test engine/session
def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Fresh schema for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_deal(db):
    """Insert a live deal straight through the ORM."""

    def _make(**overrides):
        fields = dict(
            vendor_id="vendor-1",
            title="2-for-1 tacos",
            description="Buy one taco plate, get one free",
            discount_kind="buy_one_get_one",
            redemption_frequency="unlimited",
            max_redemptions_per_user=1,
            lock_version=0,
        )
        tier = overrides.pop("tier", "standard")
        status = overrides.pop("status", DealStatus.PUBLISHED)
        fields.update(overrides)
        deal = Deal(**fields)
        deal.set_access_tier(tier)
        deal.set_status(status)
        db.add(deal)
        db.commit()
        db.refresh(deal)
        return deal

    return _make


@pytest.fixture
def grant_membership(db):
    def _grant(user_id, expires_at=None, is_pass_member=True):
        db.merge(UserMembership(
            user_id=user_id,
            is_pass_member=is_pass_member,
            pass_expires_at=expires_at or datetime.now(timezone.utc) + timedelta(days=30),
        ))
        db.commit()

    return _grant
