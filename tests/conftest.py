"""
Test configuration and fixtures.

Provides:
- In-memory SQLite session (tables recreated for each test)
- Profiles, a booking with a seller counter-proposal, and a request with quotes
- Supabase-style JWT minting for authenticated API tests
- TestClient with the database dependency overridden
"""
import os
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Generator

# Configure before the app (and its engine) are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session

from app.config import JWT_ALGORITHM, SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from app.database import Base, SessionLocal, engine, get_db
from app.domain.contracts.service import ContractService
from app.main import app
from app.models import BookingRequest, MaintenanceRequest, Profile, QuoteSubmission

SIGNATURE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk"


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; the app commits freely inside it."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


def make_profile(db: Session, user_type: str, **overrides) -> Profile:
    profile = Profile(
        id=str(uuid.uuid4()),
        email=f"{user_type}-{uuid.uuid4().hex[:8]}@test.com",
        full_name=f"Test {user_type.capitalize()}",
        user_type=user_type,
        **overrides,
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture(scope="function")
def buyer(db: Session) -> Profile:
    return make_profile(db, "buyer", signature_data=SIGNATURE)


@pytest.fixture(scope="function")
def seller(db: Session) -> Profile:
    return make_profile(db, "seller", company_name="Gulf Fixers")


@pytest.fixture(scope="function")
def outsider(db: Session) -> Profile:
    return make_profile(db, "buyer")


@pytest.fixture(scope="function")
def booking(db: Session, buyer: Profile, seller: Profile) -> BookingRequest:
    """Direct booking the seller has answered with a counter-proposal."""
    booking = BookingRequest(
        id=str(uuid.uuid4()),
        buyer_id=buyer.id,
        seller_id=seller.id,
        service_category="plumbing",
        job_description="Fix kitchen sink leak",
        location_city="Riyadh",
        location_address="King Fahd Rd 12",
        preferred_time_slot="afternoon",
        proposed_start_date=date(2024, 5, 20),
        final_amount=400.0,
        seller_counter_proposal={
            "price_estimate": 500,
            "proposed_start_date": "2024-06-01",
            "time_slot": "morning",
        },
        status="seller_responded",
    )
    db.add(booking)
    db.commit()
    return booking


@pytest.fixture(scope="function")
def maintenance_request(db: Session, buyer: Profile) -> MaintenanceRequest:
    request = MaintenanceRequest(
        id=str(uuid.uuid4()),
        buyer_id=buyer.id,
        title="Repaint living room",
        description="Two walls, light colour",
        category="painting",
        city="Jeddah",
        location="Al Rawdah",
        preferred_time_slot="morning",
    )
    db.add(request)
    db.commit()
    return request


def make_quote(db: Session, request: MaintenanceRequest, seller: Profile, **overrides) -> QuoteSubmission:
    values = {
        "id": str(uuid.uuid4()),
        "request_id": request.id,
        "seller_id": seller.id,
        "price": 1200.0,
        "estimated_duration": "5 days",
        "start_date": date(2025, 3, 1),
        "proposal": "Two coats, premium paint",
        "status": "pending",
    }
    values.update(overrides)
    quote = QuoteSubmission(**values)
    db.add(quote)
    db.commit()
    return quote


@pytest.fixture(scope="function")
def quote(db: Session, maintenance_request: MaintenanceRequest, seller: Profile) -> QuoteSubmission:
    return make_quote(db, maintenance_request, seller)


@pytest.fixture(scope="function")
def service(db: Session) -> ContractService:
    return ContractService(db)


# =============================================================================
# Auth Fixtures
# =============================================================================


def mint_token(profile_id: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": profile_id,
        "aud": SUPABASE_JWT_AUDIENCE,
        "role": "authenticated",
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(claims, SUPABASE_JWT_SECRET, algorithm=JWT_ALGORITHM)


@dataclass
class TestAuth:
    """Authorization headers for both parties."""

    buyer: dict
    seller: dict
    outsider: dict


@pytest.fixture(scope="function")
def auth(buyer: Profile, seller: Profile, outsider: Profile) -> TestAuth:
    return TestAuth(
        buyer={"Authorization": f"Bearer {mint_token(buyer.id)}"},
        seller={"Authorization": f"Bearer {mint_token(seller.id)}"},
        outsider={"Authorization": f"Bearer {mint_token(outsider.id)}"},
    )


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
