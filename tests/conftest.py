import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SEED_DATABASE", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date, datetime, time, timedelta

import pytest

from visitflow.core.auth import AuthUtils
from visitflow.core.database import Base, SessionLocal, engine
from visitflow.models import Location, TimeSlot, User, UserRole
from visitflow.models.mixins import utcnow
from visitflow.schemas.invitation import InvitationCreate
from visitflow.services.invitation_lifecycle import InvitationLifecycle


def upcoming_monday(weeks_ahead: int = 1) -> date:
    today = utcnow().date()
    days = (7 - today.weekday()) % 7 or 7
    return today + timedelta(days=days + 7 * (weeks_ahead - 1))


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


def _user(db, username, role):
    user = User(
        username=username,
        email=f"{username}@visitflow.io",
        name=username.title(),
        role=role,
        hashed_password=AuthUtils.hash_password("password123"),
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin(db):
    return _user(db, "admin", UserRole.ADMINISTRATOR)


@pytest.fixture
def host(db):
    return _user(db, "host", UserRole.HOST)


@pytest.fixture
def approver(db):
    return _user(db, "approver", UserRole.APPROVER)


@pytest.fixture
def location(db):
    location = Location(name="Main Lobby", max_occupancy=100, is_active=True)
    db.add(location)
    db.commit()
    return location


@pytest.fixture
def monday_slot(db):
    """Monday 09:00-10:00, two visitors, 15 minute buffer, all locations."""
    slot = TimeSlot(
        name="Monday Morning",
        start_time=time(9, 0),
        end_time=time(10, 0),
        max_visitors=2,
        active_days="1",
        buffer_minutes=15,
        display_order=1,
        is_active=True,
    )
    db.add(slot)
    db.commit()
    return slot


@pytest.fixture
def monday():
    return upcoming_monday()


@pytest.fixture
def lifecycle(db):
    return InvitationLifecycle(db)


@pytest.fixture
def make_invitation(db, lifecycle, host, monday_slot, monday):
    """Create a committed Draft invitation inside the Monday slot."""
    def _make(visitors=1, start=(9, 30), end=(9, 50), day=None, **overrides):
        day = day or monday
        data = InvitationCreate(
            visitor_id=overrides.pop("visitor_id", 501),
            subject=overrides.pop("subject", "Quarterly review"),
            scheduled_start_time=at(day, *start),
            scheduled_end_time=at(day, *end),
            expected_visitor_count=visitors,
            **overrides,
        )
        invitation, _ = lifecycle.create(data, host.id)
        db.commit()
        return invitation
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {AuthUtils.token_for(user)}"}
    return _headers
