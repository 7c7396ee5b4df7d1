"""Shared fixtures: an in-memory SQLite database and row factories.

The production store is PostgreSQL; the pipeline only uses SQL that both
dialects accept, so the suite runs against sqlite+aiosqlite with no server.
"""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from config import Settings
from db.connection import Database
from db.models import Base
from db.repositories import assignments as assignments_repo
from db.repositories import contractors as contractors_repo
from db.repositories import leads as leads_repo
from db.repositories import tracking_numbers as numbers_repo

# A Wednesday; the week started on Sunday 2026-03-01.
NOW = datetime(2026, 3, 4, 15, 0, tzinfo=timezone.utc)

CUSTOMER_PHONE = "3105550142"
CONTRACTOR_PHONE = "3105550199"


def lead_payload(**overrides) -> dict:
    """A form submission that validates and scores PLATINUM (170 points)."""
    payload = {
        "first_name": "Maria",
        "last_name": "Gonzalez",
        "email": "maria.gonzalez@gmail.com",
        "phone": "(310) 555-0142",
        "address": "742 Evergreen Terrace",
        "city": "Beverly Hills",
        "state": "CA",
        "zip": "90210",
        "service_type": "Emergency Repair",
        "timeline": "Today/ASAP",
        "budget_range": "$15,000+",
        "property_type": "Single-family home (own)",
        "form_completion_time": 120,
        "ip_address": "203.0.113.7",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def settings():
    return Settings(database_url="sqlite+aiosqlite://")


@pytest_asyncio.fixture
async def database():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    db = Database(engine)
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def session(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def make_contractor():
    async def _make(session, zips=("90210",), **overrides):
        data = {
            "business_name": "Cool Air HVAC",
            "owner_name": "Sam Reyes",
            "email": f"ops-{uuid.uuid4().hex[:8]}@coolair.example",
            "phone": CONTRACTOR_PHONE,
            "specializations": ["Emergency Repair", "AC Repair", "System Replacement"],
            "max_leads_per_day": 5,
            "max_leads_per_week": 20,
            "avg_response_time": 10,
            "conversion_rate": 0.85,
            "customer_rating": 4.9,
            "status": "active",
            "is_accepting_leads": True,
            "is_verified": True,
            "subscription_tier": "pro",
            "subscription_status": "active",
            "stripe_customer_id": "cus_test",
            "stripe_payment_method_id": "pm_test",
            "credit_balance": Decimal("500.00"),
        }
        data.update(overrides)
        return await contractors_repo.create(session, data, zips)

    return _make


@pytest.fixture
def make_lead():
    async def _make(session, **overrides):
        data = {
            "customer_first_name": "Maria",
            "customer_last_name": "Gonzalez",
            "customer_email": f"maria-{uuid.uuid4().hex[:8]}@gmail.com",
            "customer_phone": CUSTOMER_PHONE,
            "customer_address": "742 Evergreen Terrace",
            "customer_city": "Beverly Hills",
            "customer_state": "CA",
            "customer_zip": "90210",
            "service_type": "Emergency Repair",
            "timeline": "Today/ASAP",
            "budget_range": "$15,000+",
            "property_type": "Single-family home (own)",
            "score": 170,
            "category": "PLATINUM",
            "price": Decimal("250.00"),
            "confidence_level": 89,
            "quality_flags": ["local_phone", "thoughtful_completion"],
            "status": "pending_assignment",
            "created_at": NOW,
        }
        data.update(overrides)
        return await leads_repo.create(session, data)

    return _make


@pytest.fixture
def add_numbers():
    async def _add(session, *numbers):
        for number in numbers:
            await numbers_repo.add(session, number)

    return _add


@pytest.fixture
def assign_directly():
    """Pair a lead with a contractor and hand it a number, bypassing the matcher."""

    async def _assign(session, pool, lead, contractor, now=NOW):
        assignment = await assignments_repo.create(
            session,
            lead_id=lead.id,
            contractor_id=contractor.id,
            assigned_at=now,
            response_deadline=now + timedelta(minutes=20),
        )
        await leads_repo.transition_status(
            session, lead.id, "assigned", ["pending_assignment"], assigned_at=now
        )
        number = await pool.acquire(session, lead.id, now=now)
        await assignments_repo.set_tracking_number(session, assignment.id, number)
        return assignment, number

    return _assign
