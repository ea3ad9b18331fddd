"""Tests for the invitation email relay service."""

import smtplib
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from eventdesk.core.database import get_session
from eventdesk.mailer import app as relay_app
from eventdesk.mailer.smtp import render_invite
from eventdesk.models import Event


@pytest.fixture(name="outbox")
def outbox_fixture(monkeypatch) -> list:
    """Capture outgoing mail instead of talking to an SMTP server."""
    sent = []

    def fake_send_mail(to_email, subject, body):
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(relay_app, "send_mail", fake_send_mail)
    return sent


@pytest.fixture(name="relay_client")
def relay_client_fixture(session: Session):
    """Test client for the relay service using the test database."""

    def get_session_override():
        return session

    relay_app.app.dependency_overrides[get_session] = get_session_override
    yield TestClient(relay_app.app)
    relay_app.app.dependency_overrides.clear()


class TestRenderInvite:
    """Tests for the invitation email body."""

    def test_contains_event_details_and_link(self, sample_event: Event):
        subject, body = render_invite(sample_event, "http://localhost:5173/register?token=abc")

        assert subject == "Invitation to Launch Party"
        assert "Main Hall" in body
        assert "http://localhost:5173/register?token=abc" in body

    def test_event_fields_are_escaped(self, sample_event: Event):
        sample_event.name = "<script>alert(1)</script>"

        _, body = render_invite(sample_event, "http://x/register?token=abc")

        assert "<script>" not in body
        assert "&lt;script&gt;" in body


class TestSendInviteEndpoint:
    """Tests for POST /send-invite."""

    def test_sends_invite(self, relay_client: TestClient, outbox: list, sample_event: Event):
        response = relay_client.post(
            "/send-invite", json={"email": "a@x.com", "eventId": str(sample_event.id), "token": "tok"}
        )

        assert response.status_code == 200
        assert response.text == "Invite sent successfully!"
        assert outbox[0]["to"] == "a@x.com"
        assert "/register?token=tok" in outbox[0]["body"]

    def test_unknown_event_sends_nothing(self, relay_client: TestClient, outbox: list):
        response = relay_client.post(
            "/send-invite", json={"email": "a@x.com", "eventId": str(uuid4()), "token": "tok"}
        )

        assert response.status_code == 404
        assert outbox == []

    def test_smtp_failure(self, relay_client: TestClient, sample_event: Event, monkeypatch):
        def refused(to_email, subject, body):
            raise smtplib.SMTPRecipientsRefused({to_email: (550, b"No such user")})

        monkeypatch.setattr(relay_app, "send_mail", refused)

        response = relay_client.post(
            "/send-invite", json={"email": "a@x.com", "eventId": str(sample_event.id), "token": "tok"}
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to send invite."

    def test_missing_fields(self, relay_client: TestClient, outbox: list):
        response = relay_client.post("/send-invite", json={"email": "a@x.com"})

        assert response.status_code == 422
        assert outbox == []
