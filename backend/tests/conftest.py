"""
Pytest configuration and fixtures for backend tests.
"""

import itertools
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.db import get_db
from rest_api.main import app
from rest_api.models import (
    Base,
    DiningTable,
    Reservation,
    ReservationAssignment,
    ReservationSettings,
    Shift,
    Tenant,
)
from shared.auth import sign_jwt
from shared.rate_limit import limiter


# Explicit ids keep fixtures independent of autoincrement order
_id_counter = itertools.count(1000)

ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]
ROME = ZoneInfo("Europe/Rome")

# Fixed clock for service tests: Monday 2030-05-20 12:00 in Rome
NOW = datetime(2030, 5, 20, 12, 0, tzinfo=ROME)
BOOKING_DATE = date(2030, 5, 21)


def next_id():
    """Generate a unique ID for test entities."""
    return next(_id_counter)


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine, expire_on_commit=False,
)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate limit counters are process-wide; start every test from zero."""
    limiter.reset()
    yield


@pytest.fixture
def fake_redis():
    """Redis stand-in for publish (pub/sub) and xadd (notification stream)."""
    redis_client = MagicMock()
    redis_client.publish = AsyncMock(return_value=1)
    redis_client.xadd = AsyncMock(return_value="1-0")
    redis_client.ping = AsyncMock(return_value=True)
    with patch(
        "rest_api.services.reservation_events.get_redis_pool",
        AsyncMock(return_value=redis_client),
    ):
        yield redis_client


@pytest.fixture(scope="function")
def client(db_session, fake_redis):
    """
    Test client with database session override.

    The lifespan is not entered: tables come from db_session and Redis is
    replaced by fake_redis.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    yield TestClient(app)

    app.dependency_overrides.clear()


# =============================================================================
# Seed fixtures
# =============================================================================


@pytest.fixture
def seed_tenant(db_session):
    tenant = Tenant(
        id=1,
        name="Trattoria Test",
        slug="trattoria",
        timezone="Europe/Rome",
        is_active=True,
    )
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture
def seed_settings(db_session, seed_tenant):
    config = ReservationSettings(
        id=next_id(),
        tenant_id=seed_tenant.id,
        is_active=True,
        total_seats=12,
        total_high_chairs=2,
        notification_email="sala@trattoria.it",
    )
    db_session.add(config)
    db_session.commit()
    db_session.refresh(config)
    return config


@pytest.fixture
def seed_tables(db_session, seed_tenant):
    """T1 (2 seats), T2 (4 seats), T3 (6 seats)."""
    tables = [
        DiningTable(
            id=next_id(),
            tenant_id=seed_tenant.id,
            name=name,
            seats=seats,
            display_order=order,
            is_active=True,
        )
        for order, (name, seats) in enumerate([("T1", 2), ("T2", 4), ("T3", 6)])
    ]
    db_session.add_all(tables)
    db_session.commit()
    for table in tables:
        db_session.refresh(table)
    return tables


@pytest.fixture
def seed_shift(db_session, seed_tenant):
    """Dinner 19:00-23:00 every day."""
    shift = Shift(
        id=next_id(),
        tenant_id=seed_tenant.id,
        name="Cena",
        start_time="19:00",
        end_time="23:00",
        days_of_week=ALL_DAYS,
        is_active=True,
    )
    db_session.add(shift)
    db_session.commit()
    db_session.refresh(shift)
    return shift


@pytest.fixture
def restaurant(seed_tenant, seed_settings, seed_tables, seed_shift):
    """Tenant open for bookings with tables and a dinner shift."""
    return seed_tenant


@pytest.fixture
def make_reservation(db_session, seed_tenant):
    """Factory persisting a reservation, optionally bound to tables."""
    def _make(
        status="pending",
        guests=2,
        high_chairs=0,
        reservation_date=BOOKING_DATE,
        reservation_time="20:00",
        table_ids=(),
        customer_name="Mario Rossi",
        customer_email="mario@example.com",
    ):
        reservation = Reservation(
            id=next_id(),
            tenant_id=seed_tenant.id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone="+39 333 1234567",
            guests=guests,
            high_chairs=high_chairs,
            reservation_date=reservation_date,
            reservation_time=reservation_time,
            status=status,
        )
        for table_id in table_ids:
            reservation.assignments.append(ReservationAssignment(
                id=next_id(),
                tenant_id=seed_tenant.id,
                table_id=table_id,
                reservation_date=reservation_date,
                reservation_time=reservation_time,
            ))
        db_session.add(reservation)
        db_session.commit()
        db_session.refresh(reservation)
        return reservation

    return _make


# =============================================================================
# Auth fixtures
# =============================================================================


def _headers(tenant_id, roles, user_id="7", email="staff@trattoria.it"):
    token = sign_jwt({
        "sub": user_id,
        "tenant_id": tenant_id,
        "roles": roles,
        "email": email,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(seed_tenant):
    """Manager of the seeded tenant."""
    return _headers(seed_tenant.id, ["MANAGER"])


@pytest.fixture
def waiter_headers(seed_tenant):
    return _headers(seed_tenant.id, ["WAITER"], user_id="8", email="waiter@trattoria.it")


@pytest.fixture
def foreign_headers():
    """Staff of another tenant."""
    return _headers(99, ["ADMIN"], user_id="9")


def future_date(days=7):
    """A date safely in the future for API tests that use the real clock."""
    return date.today() + timedelta(days=days)
