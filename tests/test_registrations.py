"""Tests for resolving invitation tokens and registering."""

import threading
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine, select

from eventdesk.core.database import set_sqlite_pragma
from eventdesk.core.errors import NotFound, TokenAlreadyUsed, ValidationError
from eventdesk.core.identity import Identity
from eventdesk.invitations.issuer import issue_invitation
from eventdesk.models import Event, Invitation, Registration, RegistrationForm
from eventdesk.registrations import resolver
from eventdesk.registrations.resolver import preview_invitation, resolve_and_register

GUEST = Identity(user_id="guest-1")


@pytest.fixture(name="token")
def token_fixture(session: Session, owner, relay, sample_event: Event) -> str:
    """An emailed invitation to a@x.com for the sample event."""
    return issue_invitation(session, owner, sample_event.id, "a@x.com", relay).token


def form(token: str, name="Bob", email="a@x.com", phone="555") -> RegistrationForm:
    return RegistrationForm(token=token, name=name, email=email, phone=phone)


def registrations(session: Session) -> list[Registration]:
    return session.exec(select(Registration)).all()


class TestPreviewInvitation:
    """Tests for looking up an invitation."""

    def test_preview(self, session: Session, token: str, sample_event: Event):
        preview = preview_invitation(session, token)

        assert preview.event_id == str(sample_event.id)
        assert preview.event_name == "Launch Party"
        assert preview.email == "a@x.com"
        assert preview.consumed is False

    def test_unknown_token(self, session: Session):
        with pytest.raises(NotFound):
            preview_invitation(session, "no-such-token")

    def test_blank_token(self, session: Session):
        with pytest.raises(ValidationError):
            preview_invitation(session, "  ")


class TestResolveAndRegister:
    """Tests for registering through a token."""

    def test_register(self, session: Session, token: str, sample_event: Event, owner):
        receipt = resolve_and_register(session, token, form(token), GUEST)

        assert receipt.event_id == sample_event.id
        stored = session.get(Registration, receipt.ticket_id)
        assert (stored.name, stored.email, stored.phone) == ("Bob", "a@x.com", "555")
        assert stored.token == token
        assert stored.owner_id == owner.user_id
        assert stored.registrant_id == GUEST.user_id

    def test_unknown_token_writes_nothing(self, session: Session, sample_event: Event):
        with pytest.raises(NotFound):
            resolve_and_register(session, "bogus", form("bogus"), GUEST)

        assert registrations(session) == []

    def test_missing_fields(self, session: Session, token: str):
        with pytest.raises(ValidationError) as excinfo:
            resolve_and_register(session, token, form(token, name=" ", phone=""), GUEST)

        assert excinfo.value.details == {"missing": ["name", "phone"]}
        assert registrations(session) == []

    def test_invalid_email(self, session: Session, token: str):
        with pytest.raises(ValidationError):
            resolve_and_register(session, token, form(token, email="bob"), GUEST)

    def test_single_use_token_is_consumed(self, session: Session, token: str):
        resolve_and_register(session, token, form(token), GUEST, policy="single_use")

        assert session.get(Invitation, token).consumed_at is not None
        with pytest.raises(TokenAlreadyUsed):
            resolve_and_register(session, token, form(token, name="Eve"), GUEST, policy="single_use")
        assert len(registrations(session)) == 1

    def test_multi_use_token(self, session: Session, token: str):
        first = resolve_and_register(session, token, form(token), GUEST, policy="multi_use")
        second = resolve_and_register(session, token, form(token, name="Eve"), GUEST, policy="multi_use")

        assert first.ticket_id != second.ticket_id
        assert session.get(Invitation, token).consumed_at is None
        assert len(registrations(session)) == 2

    def test_event_deleted_after_invite(self, session: Session, token: str, sample_event: Event):
        session.delete(sample_event)
        session.commit()

        with pytest.raises(NotFound):
            resolve_and_register(session, token, form(token), GUEST)


class TestRegistrationRoutes:
    """Tests for the registration endpoints."""

    def test_preview_needs_no_identity(self, client: TestClient, token: str):
        response = client.get("/register", params={"token": token})

        assert response.status_code == 200
        assert response.json()["event_name"] == "Launch Party"

    def test_preview_unknown_token(self, client: TestClient):
        response = client.get("/register", params={"token": "nope"})

        assert response.status_code == 404
        assert response.json() == {"error": "NOT_FOUND", "message": "Invalid invitation token."}

    def test_register(self, client: TestClient, token: str, sample_event: Event):
        response = client.post(
            "/register",
            json={"token": token, "name": "Bob", "email": "a@x.com", "phone": "555"},
            headers={"X-User-Id": GUEST.user_id},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["event_id"] == str(sample_event.id)
        assert data["ticket_id"]

    def test_register_requires_identity(self, client: TestClient, token: str, session: Session):
        response = client.post(
            "/register", json={"token": token, "name": "Bob", "email": "a@x.com", "phone": "555"}
        )

        assert response.status_code == 401
        assert registrations(session) == []

    def test_register_missing_fields(self, client: TestClient, token: str):
        response = client.post(
            "/register", json={"token": token, "name": "Bob"}, headers={"X-User-Id": GUEST.user_id}
        )

        assert response.status_code == 422
        assert response.json()["missing"] == ["email", "phone"]

    def test_reused_token(self, client: TestClient, token: str):
        body = {"token": token, "name": "Bob", "email": "a@x.com", "phone": "555"}
        guest = {"X-User-Id": GUEST.user_id}

        assert client.post("/register", json=body, headers=guest).status_code == 201
        response = client.post("/register", json=body, headers=guest)

        assert response.status_code == 409
        assert response.json()["error"] == "TOKEN_ALREADY_USED"

    def test_registrant_list(self, client: TestClient, headers: dict, token: str,
                             event_with_attendees: Event):
        client.post(
            "/register",
            json={"token": token, "name": "Bob Registered", "email": "BOB@x.com", "phone": "555"},
            headers={"X-User-Id": GUEST.user_id},
        )

        response = client.get("/registrations", headers=headers)

        assert response.status_code == 200
        data = response.json()
        names = sorted(r["name"] for r in data["registrants"])
        assert names == ["Ann", "Bob Registered", "Cy"]
        assert data["counts"] == {str(event_with_attendees.id): 3}

        only_registrations = client.get(
            "/registrations", params={"view": "registrations"}, headers=headers
        ).json()
        assert [r["source"] for r in only_registrations["registrants"]] == ["registrations"]

    def test_registrant_list_bad_view(self, client: TestClient, headers: dict):
        response = client.get("/registrations", params={"view": "everyone"}, headers=headers)
        assert response.status_code == 422


class TestConcurrentRegistration:
    """Tests for two registrations racing on one single-use token."""

    @pytest.fixture(name="file_engine")
    def file_engine_fixture(self, tmp_path):
        """A file-backed database, so each thread gets its own connection."""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False, "timeout": 5},
        )
        sa_event.listen(engine, "connect", set_sqlite_pragma)
        SQLModel.metadata.create_all(engine)
        with Session(engine) as session:
            event = Event(owner_id="owner-1", name="Launch Party", date=date(2026, 11, 1))
            session.add(event)
            session.commit()
            session.add(Invitation(id="tok", owner_id="owner-1", event_id=event.id, email="a@x.com"))
            session.commit()
        yield engine
        engine.dispose()

    def test_only_one_registration_wins(self, file_engine, monkeypatch):
        original_resolve = resolver._resolve
        both_resolved = threading.Barrier(2)
        synced = set()

        def resolve_together(session, token):
            found = original_resolve(session, token)
            # Both threads read the unconsumed invitation before either writes
            if threading.get_ident() not in synced:
                synced.add(threading.get_ident())
                both_resolved.wait(timeout=5)
            return found

        monkeypatch.setattr(resolver, "_resolve", resolve_together)
        outcomes = []

        def register(user_id):
            with Session(file_engine) as session:
                try:
                    resolve_and_register(
                        session, "tok", form("tok", name=user_id), Identity(user_id=user_id),
                        policy="single_use",
                    )
                    outcomes.append("registered")
                except TokenAlreadyUsed:
                    outcomes.append("rejected")

        threads = [threading.Thread(target=register, args=(u,)) for u in ("u1", "u2")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == ["registered", "rejected"]
        with Session(file_engine) as session:
            assert len(registrations(session)) == 1
            assert session.get(Invitation, "tok").consumed_at is not None
