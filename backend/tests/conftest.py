"""
Shared fixtures: in-memory SQLite session, frozen clock, row factories and
a TestClient wired to both.
"""

import os

# Before slotbook is imported: no on-disk database, no Redis
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""

from datetime import datetime, time, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from slotbook.clock import FrozenClock, get_clock
from slotbook.database import enable_sqlite_fk, get_db
from slotbook.main import app
from slotbook.models import (
    Base,
    Businesses,
    Services,
    Subscriptions,
    SubscriptionStatus,
    UserRole,
    Users,
)
from slotbook.services.scheduling import SchedulingConfig

# Monday; business hours in the fixtures start at 09:00
NOW = datetime(2026, 3, 2, 8, 0)
TODAY = NOW.date()


def at(hour: int, minute: int = 0, day=TODAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", enable_sqlite_fk)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def config():
    return SchedulingConfig()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.CLIENT, name: str | None = None) -> Users:
        counter["n"] += 1
        user = Users(
            email=f"{role.value}{counter['n']}@example.com",
            name=name or f"{role.value.title()} {counter['n']}",
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_subscription(db):
    def _make(
        user: Users,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        start: datetime = NOW - timedelta(days=1),
        end: datetime = NOW + timedelta(days=30),
        payment_reference: str | None = None,
    ) -> Subscriptions:
        sub = Subscriptions(
            user_id=user.id,
            status=status,
            amount=99.0,
            currency="SAR",
            payment_reference=payment_reference,
            current_period_start=start,
            current_period_end=end,
            trial_ends_at=end if status == SubscriptionStatus.TRIAL else None,
            created_at=start,
            updated_at=start,
        )
        db.add(sub)
        db.commit()
        db.refresh(sub)
        return sub

    return _make


@pytest.fixture
def make_business(db):
    def _make(owner: Users, open_time=time(9, 0), close_time=time(18, 0), name="Barber Shop") -> Businesses:
        business = Businesses(
            user_id=owner.id,
            name=name,
            open_time=open_time,
            close_time=close_time,
        )
        db.add(business)
        db.commit()
        db.refresh(business)
        return business

    return _make


@pytest.fixture
def make_service(db):
    def _make(business: Businesses, duration=30, price=50.0, name="Haircut") -> Services:
        service = Services(
            business_id=business.id,
            name=name,
            duration=duration,
            price=price,
        )
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    return _make


@pytest.fixture
def owner(make_user):
    return make_user(UserRole.OWNER, name="Olivia Owner")


@pytest.fixture
def client_user(make_user):
    return make_user(UserRole.CLIENT, name="Carl Client")


@pytest.fixture
def business(make_business, owner):
    return make_business(owner)


@pytest.fixture
def service(make_service, business):
    return make_service(business)


# ── HTTP ─────────────────────────────────────────────────────────────────


@pytest.fixture
def client(db, clock):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
