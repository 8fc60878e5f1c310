"""
Tests for the Flask API.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from conftest import PROFESSORS
from professor_connect.api_helpers import set_backend, wizards
from professor_connect.auth import create_access_token
from professor_connect.database import get_db
from professor_connect.models import EmailRecord, EmailStatus, User
from professor_connect.services.gmail_auth_service import create_state

import api_server


@pytest.fixture
def client(tables, backend):
    api_server.app.testing = True
    set_backend(backend.client)
    wizards.clear()
    with get_db() as db:
        db.add(User(id="google-uid-1", display_name="Ada Lovelace", email="ada@example.com"))
    yield api_server.app.test_client()
    set_backend(None)
    wizards.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token('google-uid-1', 'ada@example.com')}"}


@pytest.fixture
def connected(client, auth_headers):
    response = client.post("/api/gmail/token", json={"accessToken": "access-1", "refreshToken": "refresh-1"},
                           headers=auth_headers)
    assert response.status_code == 200


def history(client, auth_headers):
    return client.get("/api/emails", headers=auth_headers).get_json()["emails"]


def walk_to_email_step(client, auth_headers, backend):
    backend.respond("/api/scraping", PROFESSORS)
    backend.respond("/api/email", {"subject": "ML for hospitals", "body": "Dear Professor,"})

    response = client.post("/api/wizard/search", json={"researchInterest": "machine learning in healthcare"},
                           headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()["wizard"]["step"] == "selection"

    response = client.post("/api/wizard/select", json={"professorId": "p2"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()["wizard"]["step"] == "email"


class TestAuth:
    """Tests for sign-in and session handling."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"

    def test_missing_token_rejected(self, client):
        assert client.get("/api/wizard").status_code == 401

    def test_garbage_token_rejected(self, client):
        response = client.get("/api/wizard", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_google_sign_in_creates_user(self, client):
        claims = {"sub": "google-uid-2", "name": "Alan Turing", "email": "alan@example.com",
                  "picture": "https://example.com/alan.png"}

        with patch("api_server.verify_identity_token", return_value=claims):
            response = client.post("/api/auth/google", json={"idToken": "id-token"})

        data = response.get_json()
        assert response.status_code == 200
        assert data["user"]["displayName"] == "Alan Turing"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"}).get_json()
        assert me["email"] == "alan@example.com"
        assert me["photoURL"] == "https://example.com/alan.png"
        assert me["gmail"]["connected"] is False

    def test_oauth_state_is_not_a_session_token(self, client):
        state = create_state("google-uid-1")

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {state}"})

        assert response.status_code == 401

    def test_invalid_id_token_rejected(self, client):
        response = client.post("/api/auth/google", json={"idToken": ""})

        assert response.status_code == 401


class TestGmailConnection:
    """Tests for connecting and disconnecting Gmail."""

    def test_connect_returns_consent_url(self, client, auth_headers):
        response = client.get("/api/gmail/connect", headers=auth_headers)

        assert response.status_code == 200
        assert "gmail.send" in response.get_json()["authUrl"]

    def test_callback_with_bad_state_redirects_to_failure(self, client):
        response = client.get("/api/gmail/callback?code=abc&state=forged")

        assert response.status_code == 302
        assert response.headers["Location"].endswith("gmail=failed")

    def test_store_status_and_revoke(self, client, auth_headers, connected):
        status = client.get("/api/gmail/status", headers=auth_headers).get_json()
        assert status["connected"] is True

        assert client.delete("/api/gmail", headers=auth_headers).status_code == 200
        assert client.get("/api/gmail/status", headers=auth_headers).get_json()["connected"] is False

    def test_store_requires_token(self, client, auth_headers):
        response = client.post("/api/gmail/token", json={}, headers=auth_headers)
        assert response.status_code == 400


class TestWizardApi:
    """Tests for the wizard endpoints."""

    def test_blank_search_makes_no_backend_call(self, client, auth_headers, backend):
        response = client.post("/api/wizard/search", json={"researchInterest": "  "}, headers=auth_headers)

        assert response.status_code == 400
        assert backend.calls == []

    def test_search_failure_surfaces_server_message(self, client, auth_headers, backend):
        backend.fail("/api/scraping", status=503, message="Scraper is warming up")

        response = client.post("/api/wizard/search", json={"researchInterest": "robotics"}, headers=auth_headers)

        assert response.status_code == 502
        assert response.get_json()["error"] == "Scraper is warming up"
        assert client.get("/api/wizard", headers=auth_headers).get_json()["step"] == "input"

    def test_select_out_of_order_conflicts(self, client, auth_headers):
        response = client.post("/api/wizard/select", json={"professorId": "p2"}, headers=auth_headers)

        assert response.status_code == 409
        assert response.get_json()["wizard"]["step"] == "input"

    def test_send_without_gmail_asks_to_reconnect(self, client, auth_headers, backend):
        walk_to_email_step(client, auth_headers, backend)

        response = client.post("/api/wizard/send", headers=auth_headers)

        assert response.status_code == 401
        assert response.get_json()["reconnect"] is True
        assert history(client, auth_headers) == []

    def test_full_flow(self, client, auth_headers, backend, connected):
        backend.respond("/api/send-email", {"id": "gmail-msg-1"})
        walk_to_email_step(client, auth_headers, backend)

        response = client.put("/api/wizard/draft", json={"body": "Dear Dr. Li, edited."}, headers=auth_headers)
        assert response.get_json()["wizard"]["draft"]["body"] == "Dear Dr. Li, edited."

        response = client.post("/api/wizard/send", headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()["wizard"]["step"] == "sent"

        emails = history(client, auth_headers)
        assert len(emails) == 1
        assert emails[0]["status"] == "sent"
        assert emails[0]["professorEmail"] == "feifei@uni.edu"
        assert emails[0]["body"] == "Dear Dr. Li, edited."
        assert backend.calls_to("/api/send-email")[0]["access_token"] == "access-1"

    def test_failed_send_is_recorded(self, client, auth_headers, backend, connected):
        backend.fail("/api/send-email", status=500, message="quota exceeded")
        walk_to_email_step(client, auth_headers, backend)

        response = client.post("/api/wizard/send", headers=auth_headers)

        assert response.status_code == 502
        emails = history(client, auth_headers)
        assert len(emails) == 1
        assert emails[0]["status"] == "failed"
        assert emails[0]["id"] == response.get_json()["recordId"]

    def test_schedule_in_past_rejected(self, client, auth_headers, backend):
        walk_to_email_step(client, auth_headers, backend)
        past = (datetime.utcnow() - timedelta(hours=1)).isoformat() + "Z"

        response = client.post("/api/wizard/schedule", json={"scheduledAt": past}, headers=auth_headers)

        assert response.status_code == 400
        assert history(client, auth_headers) == []

    def test_schedule_in_future(self, client, auth_headers, backend):
        walk_to_email_step(client, auth_headers, backend)
        future = (datetime.utcnow() + timedelta(days=1)).isoformat() + "Z"

        response = client.post("/api/wizard/schedule", json={"scheduledAt": future}, headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json()["wizard"]["step"] == "sent"
        emails = history(client, auth_headers)
        assert emails[0]["status"] == "scheduled"
        assert emails[0]["scheduledAt"] is not None

    def test_schedule_without_offset_rejected(self, client, auth_headers, backend):
        walk_to_email_step(client, auth_headers, backend)
        local = (datetime.utcnow() + timedelta(days=1)).isoformat()

        response = client.post("/api/wizard/schedule", json={"scheduledAt": local}, headers=auth_headers)

        assert response.status_code == 400
        assert "timezone" in response.get_json()["error"]
        assert history(client, auth_headers) == []

    def test_back_and_reset(self, client, auth_headers, backend):
        walk_to_email_step(client, auth_headers, backend)

        assert client.post("/api/wizard/back", headers=auth_headers).get_json()["wizard"]["step"] == "selection"
        assert client.post("/api/wizard/reset", headers=auth_headers).get_json()["wizard"]["step"] == "input"


class TestHistoryApi:
    """Tests for the email history endpoints."""

    @pytest.fixture
    def failed_record_id(self, client, auth_headers, backend, connected):
        backend.fail("/api/send-email")
        walk_to_email_step(client, auth_headers, backend)
        return client.post("/api/wizard/send", headers=auth_headers).get_json()["recordId"]

    def test_edit_and_resend_keeps_original(self, client, auth_headers, backend, failed_record_id):
        backend.respond("/api/send-email", {})

        response = client.post(
            f"/api/emails/{failed_record_id}/edit-resend",
            json={"subject": "Second try", "body": "Dear Dr. Li,", "to": "li-lab@uni.edu"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        new_id = response.get_json()["recordId"]
        with get_db() as db:
            original = db.get(EmailRecord, failed_record_id)
            resent = db.get(EmailRecord, new_id)
            assert original.status == EmailStatus.FAILED
            assert original.subject == "ML for hospitals"
            assert resent.status == EmailStatus.SENT
            assert resent.to == "li-lab@uni.edu"

    def test_reminder_needs_a_sent_email(self, client, auth_headers, failed_record_id):
        response = client.post(f"/api/emails/{failed_record_id}/reminder", headers=auth_headers)
        assert response.status_code == 400

    def test_unknown_record(self, client, auth_headers):
        response = client.post("/api/emails/missing/resend", headers=auth_headers)
        assert response.status_code == 404

    def test_history_total_counts_every_page(self, client, auth_headers, backend, failed_record_id):
        backend.respond("/api/send-email", {})
        client.post(f"/api/emails/{failed_record_id}/resend", headers=auth_headers)

        data = client.get("/api/emails?limit=1", headers=auth_headers).get_json()

        assert len(data["emails"]) == 1
        assert data["total"] == 2

    def test_stats(self, client, auth_headers, failed_record_id):
        stats = client.get("/api/emails/stats", headers=auth_headers).get_json()

        assert stats["failed"] == 1
        assert stats["total"] == 1
