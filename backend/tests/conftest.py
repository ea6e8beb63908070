"""Shared pytest fixtures for test suite"""
import os
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import Mock, patch

from factories import (
    RESEND_TEST_DELIVERED, TEST_PASSWORD, WEBHOOK_SECRET, SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD
)

# Settings are read at import time; point them at test values first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["STRIPE_WEBHOOK_ALLOW_UNSIGNED"] = "false"
os.environ["RESEND_API_KEY"] = "re_test_123"
os.environ["OPENAI_API_KEY"] = ""
os.environ["SUPER_ADMIN_EMAIL"] = SUPER_ADMIN_EMAIL
os.environ["SUPER_ADMIN_PASSWORD"] = SUPER_ADMIN_PASSWORD

import pytest
import fakeredis
import stripe
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.main import app
from app.db.session import get_db
from app.db import redis as redis_module
from app.models import Base
from app.models.club import Club
from app.models.user import User
from app.services.auth_service import hash_password


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def mock_redis():
    """Replace the lazily created Redis client with fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, "_client", fake_redis):
        yield fake_redis


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and mocked Redis"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        # Disable OpenTelemetry and the real database during startup
        with patch("app.main.initialize_tracing", return_value=False):
            with patch("app.main.init_db"):
                with TestClient(app) as test_client:
                    yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_club(db_session: Session) -> Club:
    """A club whose owner uses the Resend delivered test address"""
    club = Club(
        name="Tiger Taekwondo",
        owner_email=RESEND_TEST_DELIVERED,
        owner_name="Jamie Park",
        country="US",
        city="Austin",
        trial_status="active",
        status="active",
    )
    db_session.add(club)
    db_session.commit()
    db_session.refresh(club)
    return club


@pytest.fixture(scope="function")
def test_user(db_session: Session, test_club: Club) -> User:
    """Owner account for the test club"""
    user = User(
        club_id=test_club.id,
        email=RESEND_TEST_DELIVERED,
        name="Jamie Park",
        role="owner",
        password_hash=hash_password(TEST_PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def authenticated_client(client: TestClient, test_user: User) -> TestClient:
    """Client logged in as the test club owner"""
    response = client.post("/api/auth/login", json={"email": test_user.email, "password": TEST_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture(scope="function")
def super_admin_headers(client: TestClient) -> dict:
    """Authorization header carrying a fresh super admin token"""
    response = client.post(
        "/api/super-admin/login",
        json={"email": SUPER_ADMIN_EMAIL, "password": SUPER_ADMIN_PASSWORD}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture(scope="function", autouse=True)
def mock_stripe_api():
    """Stub Stripe API lookups; signature verification stays real"""
    customer = {"id": "cus_test123", "object": "customer", "email": RESEND_TEST_DELIVERED}
    subscription = {
        "id": "sub_test123",
        "object": "subscription",
        "items": {"data": [{
            "price": {
                "id": "price_test123",
                "unit_amount": 4900,
                "recurring": {"interval": "month"},
                "product": "prod_test123",
            }
        }]},
    }
    product = {"id": "prod_test123", "object": "product", "name": "TaekUp Pro"}

    with patch.object(stripe.Customer, "retrieve", Mock(return_value=customer)) as customer_retrieve, \
            patch.object(stripe.Subscription, "retrieve", Mock(return_value=subscription)) as subscription_retrieve, \
            patch.object(stripe.Product, "retrieve", Mock(return_value=product)) as product_retrieve:
        yield Mock(
            Customer=Mock(retrieve=customer_retrieve),
            Subscription=Mock(retrieve=subscription_retrieve),
            Product=Mock(retrieve=product_retrieve),
        )


@pytest.fixture(scope="function", autouse=True)
def mock_email_service():
    """Mock email service (Resend) to avoid sending actual emails"""
    with patch("app.services.email_service.resend") as mock_resend:
        mock_resend.Emails.send = Mock(return_value={"id": "email_test123"})
        yield mock_resend
