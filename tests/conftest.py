"""Shared test fixtures."""

from __future__ import annotations

import os
from collections import defaultdict
from contextlib import ExitStack
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"  # In-memory DB for tests
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ.pop("ENCRYPTION_KEY", None)
os.environ.pop("CRON_SECRET", None)

from rentalhost.database import Base
from rentalhost.events import EventBus, event_bus as global_event_bus
from rentalhost.models.booking import Booking
from rentalhost.models.property import Property
from rentalhost.models.user import UserProfile

# Import all models to register them
import rentalhost.models  # noqa: F401


FIXTURES_DIR = Path(__file__).parent / "fixtures"

# Modules that open their own sessions through get_session()
SESSION_MODULES = (
    "rentalhost.auth",
    "rentalhost.modules.bookings.service",
    "rentalhost.modules.calendar_sync.sync",
    "rentalhost.modules.cleanings.notifier",
    "rentalhost.modules.cleanings.service",
    "rentalhost.modules.guest_checkin.service",
    "rentalhost.modules.guest_comms.email_scheduler",
    "rentalhost.modules.properties.service",
    "rentalhost.modules.referral_sites.service",
)


def _noop_close(self):
    pass


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite://", echo=False)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    session = session_factory()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def db(db_session: Session):
    """Route every service's get_session() to the test session and keep it open."""
    with ExitStack() as stack:
        for module in SESSION_MODULES:
            stack.enter_context(patch(f"{module}.get_session", return_value=db_session))
        stack.enter_context(patch.object(Session, "close", _noop_close))
        yield db_session


@pytest.fixture(autouse=True)
def isolated_event_bus():
    """Drop subscribers registered on the global bus by a test."""
    with patch.object(global_event_bus, "_subscribers", defaultdict(list)):
        yield global_event_bus


@pytest.fixture
def host(db_session: Session) -> UserProfile:
    user = UserProfile(id="host-1", email="host@example.com", full_name="Hannah Host", role="host")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def cleaner(db_session: Session) -> UserProfile:
    user = UserProfile(
        id="cleaner-1", email="cleaner@example.com", full_name="Carl Cleaner", role="cleaner", phone="+15551234567"
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def sample_property(db_session: Session, host: UserProfile) -> Property:
    """Create a sample property."""
    prop = Property(
        host_id=host.id,
        name="Test Loft",
        address="123 Test St",
        checkout_time="11:00",
        checkin_time="15:00",
        default_cleaning_cost=95.0,
    )
    db_session.add(prop)
    db_session.commit()
    return prop


@pytest.fixture
def sample_booking(db_session: Session, sample_property: Property) -> Booking:
    """Create a sample booking."""
    booking = Booking(
        property_id=sample_property.id,
        guest_name="John Doe",
        contact_email="john@example.com",
        check_in=datetime(2030, 2, 1),
        check_out=datetime(2030, 2, 5),
        booking_platform="manual",
        total_amount=480.0,
        currency="USD",
        status="confirmed",
    )
    db_session.add(booking)
    db_session.commit()
    return booking


@pytest.fixture
def event_bus():
    """Create a fresh event bus for each test."""
    return EventBus()


@pytest.fixture
def sample_ics() -> str:
    """Load sample iCal data."""
    return (FIXTURES_DIR / "sample.ics").read_text()
