"""Shared test fixtures."""

from datetime import UTC, date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from eventdesk.core.database import get_session, set_sqlite_pragma
from eventdesk.core.errors import NotificationDeliveryFailure
from eventdesk.core.identity import Identity
from eventdesk.invitations.relay import get_relay
from eventdesk.main import app
from eventdesk.models import Attendee, Event

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"


class FakeRelay:
    """Stands in for the email relay client, recording what it was asked to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send_invite(self, email, event_id, token):
        if self.fail:
            raise NotificationDeliveryFailure("Failed to send invitation: 500 Failed to send invite.")
        self.sent.append({"email": email, "eventId": str(event_id), "token": token})


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    sa_event.listen(engine, "connect", set_sqlite_pragma)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="relay")
def relay_fixture() -> FakeRelay:
    return FakeRelay()


@pytest.fixture(name="client")
def client_fixture(session: Session, relay: FakeRelay):
    """Create a test client with the test database session and a fake relay."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_relay] = lambda: relay
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="owner")
def owner_fixture() -> Identity:
    return Identity(user_id=OWNER_ID)


@pytest.fixture(name="other_owner")
def other_owner_fixture() -> Identity:
    return Identity(user_id=OTHER_OWNER_ID)


@pytest.fixture(name="headers")
def headers_fixture() -> dict:
    """Headers the identity gateway would forward for the owner."""
    return {"X-User-Id": OWNER_ID}


@pytest.fixture(name="sample_event")
def sample_event_fixture(session: Session) -> Event:
    """Create an upcoming event owned by the test owner."""
    event = Event(
        owner_id=OWNER_ID,
        name="Launch Party",
        date=date.today() + timedelta(days=7),
        time="18:30",
        location="Main Hall",
        type="Party",
        description="Drinks and demos",
    )
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@pytest.fixture(name="event_with_attendees")
def event_with_attendees_fixture(session: Session, sample_event: Event) -> Event:
    """Add three attendees to the sample event, one of them checked in."""
    base = datetime.now(UTC) - timedelta(hours=3)
    attendees = [
        Attendee(owner_id=OWNER_ID, event_id=sample_event.id, name="Ann", email="ann@x.com",
                 created_at=base),
        Attendee(owner_id=OWNER_ID, event_id=sample_event.id, name="Bob", email="bob@x.com",
                 created_at=base + timedelta(hours=1)),
        Attendee(owner_id=OWNER_ID, event_id=sample_event.id, name="Cy", email="cy@x.com",
                 attended=True, created_at=base + timedelta(hours=2)),
    ]
    for attendee in attendees:
        session.add(attendee)
    session.commit()
    session.refresh(sample_event)
    return sample_event


@pytest.fixture(name="foreign_event")
def foreign_event_fixture(session: Session) -> Event:
    """An event owned by somebody else."""
    event = Event(
        owner_id=OTHER_OWNER_ID,
        name="Someone Else's Gala",
        date=date.today() + timedelta(days=3),
        type="Gala",
    )
    session.add(event)
    session.commit()
    session.refresh(event)
    return event
