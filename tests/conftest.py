"""
Shared pytest fixtures for all tests.

Every test runs against a fresh in-memory SQLite database. Redis backed
concerns (rate limiting, cache, ARQ queue) are switched off through the
environment before the application is imported.
"""

import os
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["QUEUE_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")

from app.auth import get_current_user  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402
from app.models import Professional, Service, Tenant, User, WorkingHours  # noqa: E402
from app.models_customer import Customer  # noqa: E402

API = "/api/v1"


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="session")
def engine():
    """Single in-memory SQLite database shared across threads."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db(engine):
    """
    Create a fresh database session for each test.

    Tables are created before and dropped after every test so no state leaks.
    """
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# ============================================================================
# TENANT AND USER FIXTURES
# ============================================================================


@pytest.fixture
def tenant(db) -> Tenant:
    """Active tenant on the ENTERPRISE plan: every feature, no limits."""
    salon = Tenant(
        name="Studio Bella",
        slug="studio-bella",
        email="contato@studiobella.com",
        phone="+5511987654321",
        status="ACTIVE",
        plan_type="ENTERPRISE",
        feature_overrides={},
        settings={},
    )
    db.add(salon)
    db.commit()
    db.refresh(salon)
    return salon


@pytest.fixture
def owner(db, tenant) -> User:
    user = User(
        tenant_id=tenant.id,
        name="Ana Owner",
        email="ana@studiobella.com",
        password_hash="not-used",
        role="OWNER",
        status="ACTIVE",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def receptionist(db, tenant) -> User:
    user = User(
        tenant_id=tenant.id,
        name="Rita Front Desk",
        email="rita@studiobella.com",
        password_hash="not-used",
        role="RECEPTIONIST",
        status="ACTIVE",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# ============================================================================
# DATA FACTORIES
# ============================================================================


@pytest.fixture
def make_customer(db, tenant):
    def factory(name="Maria Silva", phone="+5511912345678", email=None, **kwargs) -> Customer:
        kwargs.setdefault("tags", [])
        customer = Customer(tenant_id=tenant.id, name=name, phone=phone, email=email, **kwargs)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    return factory


@pytest.fixture
def make_service(db, tenant):
    def factory(name="Corte Feminino", duration=60, price=100.0, **kwargs) -> Service:
        service = Service(
            tenant_id=tenant.id,
            name=name,
            slug=name.lower().replace(" ", "-"),
            duration=duration,
            price=price,
            **kwargs,
        )
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    return factory


@pytest.fixture
def make_professional(db, tenant):
    def factory(name="Julia Stylist", services=None, start="09:00", end="18:00", **kwargs) -> Professional:
        professional = Professional(tenant_id=tenant.id, name=name, **kwargs)
        professional.services = list(services or [])
        db.add(professional)
        db.flush()
        # Sunday = 0; works Monday to Saturday
        for day in range(7):
            db.add(
                WorkingHours(
                    tenant_id=tenant.id,
                    professional_id=professional.id,
                    day_of_week=day,
                    is_working_day=day != 0,
                    start_time=start if day != 0 else None,
                    end_time=end if day != 0 else None,
                )
            )
        db.commit()
        db.refresh(professional)
        return professional

    return factory


@pytest.fixture
def next_weekday():
    """A Monday-to-Friday date at least two days ahead, at the given hour"""

    def factory(hour: int = 10, days_ahead: int = 2) -> datetime:
        day = datetime.utcnow().replace(hour=hour, minute=0, second=0, microsecond=0) + timedelta(days=days_ahead)
        while day.weekday() >= 5:
            day += timedelta(days=1)
        return day

    return factory


# ============================================================================
# APP FIXTURES
# ============================================================================


@pytest.fixture
def app(db, owner):
    """FastAPI app with the database and the authenticated user overridden."""

    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_current_user] = lambda: owner
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def public_client(db):
    """Client without an authenticated user, for auth and public booking routes."""

    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()
