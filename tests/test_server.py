"""Tests for the FastAPI proxy.

WHY: Validates every proxy endpoint: happy paths, session handling, the
error body contract, and the middleware stack (security headers, rate
limits). Uses FastAPI TestClient for synchronous in-process testing.

HOW: OtterClient is patched in the app module with FakeClient, a scripted
stand-in whose responses each test sets up. Sessions are created through
the login endpoint or directly in the store.

RULES:
- Otter is never called (OtterClient is always patched)
- Each test is independent: the session store and both rate limiters are
  reset around every test
- Every error response is checked for the {error, message} shape
"""

from __future__ import annotations

from typing import Any, Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from otter_proxy.api.errors import AuthError, GetSpeechFailed
from otter_proxy.api.models import AggregationResult, Envelope
from otter_proxy.server.app import api_limiter, app, auth_limiter, session_store


class FakeClient:
    """Scripted OtterClient replacement."""

    def __init__(self) -> None:
        self.user_id: Optional[str] = None
        self.login_result: Any = Envelope(200, {"userid": "u-1", "email": "jane@example.com"})
        self.speeches = AggregationResult()
        self.speech_result: Any = Envelope(200, {"speech": {}})
        self.closed = False
        self.logged_out = False

    async def login(self, username: str, password: str) -> Envelope:
        if isinstance(self.login_result, Exception):
            raise self.login_result
        if self.login_result.status_code == 200:
            self.user_id = self.login_result.data.get("userid")
        return self.login_result

    def logout(self) -> None:
        self.logged_out = True
        self.user_id = None

    async def aclose(self) -> None:
        self.closed = True

    async def get_all_speeches_from_all_sources(self) -> Envelope:
        if isinstance(self.speeches, Exception):
            raise self.speeches
        return Envelope(200, self.speeches)

    async def get_speech(self, speech_id: str) -> Envelope:
        if isinstance(self.speech_result, Exception):
            raise self.speech_result
        return self.speech_result


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_state():
    """Clear sessions and rate-limit windows around each test."""
    session_store.clear()
    api_limiter.reset()
    auth_limiter.reset()
    yield
    session_store.clear()
    api_limiter.reset()
    auth_limiter.reset()


@pytest.fixture
def otter():
    return FakeClient()


@pytest.fixture
def client(otter):
    with patch("otter_proxy.server.app.OtterClient", new=lambda: otter):
        with TestClient(app) as test_client:
            yield test_client


def _login(client) -> str:
    response = client.post(
        "/api/auth/login", json={"username": "jane@example.com", "password": "secret"}
    )
    assert response.status_code == 200
    return response.json()["sessionId"]


def _assert_error(response, status_code: int, error: str) -> None:
    assert response.status_code == status_code
    body = response.json()
    assert set(body) == {"error", "message"}
    assert body["error"] == error


# ---------------------------------------------------------------------------
# Service endpoints
# ---------------------------------------------------------------------------


class TestService:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert "T" in body["timestamp"]

    def test_index_lists_endpoints(self, client):
        body = client.get("/").json()
        assert body["status"] == "running"
        assert body["endpoints"]["login"] == "POST /api/auth/login"

    def test_unknown_route_is_404(self, client):
        _assert_error(client.get("/api/nope"), 404, "Not Found")

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"
        assert "default-src 'self'" in response.headers["content-security-policy"]

    def test_rate_limit_headers(self, client):
        response = client.get("/health")
        assert response.headers["ratelimit-limit"] == "100"
        assert response.headers["ratelimit-remaining"] == "99"

    def test_oversized_body_is_rejected(self, client):
        response = client.post(
            "/api/auth/login",
            content=b"{}",
            headers={"content-type": "application/json", "content-length": str(11 * 1024 * 1024)},
        )
        _assert_error(response, 413, "Payload Too Large")


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


class TestLogin:
    def test_successful_login_creates_session(self, client, otter):
        response = client.post(
            "/api/auth/login", json={"username": "jane@example.com", "password": "secret"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["sessionId"].startswith("sess_")
        assert body["user"]["userid"] == "u-1"
        assert body["user"]["email"] == "jane@example.com"
        assert body["expiresIn"] == 24 * 60 * 60 * 1000
        assert session_store.get_client(body["sessionId"]) is otter

    def test_missing_password_is_400(self, client):
        response = client.post("/api/auth/login", json={"username": "jane@example.com"})
        _assert_error(response, 400, "Validation Error")
        assert "password is required" in response.json()["message"]

    def test_empty_username_is_400(self, client):
        response = client.post("/api/auth/login", json={"username": "", "password": "x"})
        _assert_error(response, 400, "Validation Error")
        assert "username is required" in response.json()["message"]

    def test_oversized_username_is_400(self, client):
        response = client.post("/api/auth/login", json={"username": "a" * 201, "password": "x"})
        _assert_error(response, 400, "Validation Error")
        assert "username too long" in response.json()["message"]

    def test_rejected_credentials_are_401(self, client, otter):
        otter.login_result = Envelope(401, {"error": "bad"})

        response = client.post("/api/auth/login", json={"username": "jane", "password": "bad"})

        _assert_error(response, 401, "Authentication Failed")
        assert otter.closed
        assert len(session_store) == 0

    def test_login_without_userid_is_401(self, client, otter):
        otter.login_result = Envelope(200, {"status": "OK"})

        response = client.post("/api/auth/login", json={"username": "jane", "password": "x"})

        _assert_error(response, 401, "Authentication Failed")

    def test_unreachable_otter_is_500(self, client, otter):
        otter.login_result = AuthError("connection refused")

        response = client.post("/api/auth/login", json={"username": "jane", "password": "x"})

        _assert_error(response, 500, "Authentication Error")
        assert otter.closed

    def test_login_rate_limit(self, client, otter):
        otter.login_result = Envelope(401, {})
        for _ in range(5):
            response = client.post("/api/auth/login", json={"username": "jane", "password": "x"})
            assert response.status_code == 401

        response = client.post("/api/auth/login", json={"username": "jane", "password": "x"})

        _assert_error(response, 429, "Too many authentication attempts")


class TestLogout:
    def test_logout_with_header_removes_session(self, client, otter):
        session_id = _login(client)

        response = client.post("/api/auth/logout", headers={"session-id": session_id})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Logged out successfully"}
        assert len(session_store) == 0
        assert otter.logged_out
        assert otter.closed

    def test_logout_with_body(self, client):
        session_id = _login(client)

        response = client.post("/api/auth/logout", json={"sessionId": session_id})

        assert response.status_code == 200
        assert len(session_store) == 0

    def test_logout_without_session_still_succeeds(self, client):
        response = client.post("/api/auth/logout")
        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_session_is_unusable_after_logout(self, client):
        session_id = _login(client)
        client.post("/api/auth/logout", headers={"session-id": session_id})

        response = client.get("/api/speech-ids", headers={"session-id": session_id})

        _assert_error(response, 401, "Invalid session")


# ---------------------------------------------------------------------------
# Speeches
# ---------------------------------------------------------------------------


class TestSpeechIds:
    def test_requires_session_header(self, client):
        _assert_error(client.get("/api/speech-ids"), 401, "Session ID required")

    def test_unknown_session(self, client):
        response = client.get("/api/speech-ids", headers={"session-id": "sess_unknown"})
        _assert_error(response, 401, "Invalid session")

    def test_expired_session(self, client):
        session_id = _login(client)
        session_store.get_session(session_id).last_seen -= session_store.timeout_seconds + 1

        response = client.get("/api/speech-ids", headers={"session-id": session_id})

        _assert_error(response, 401, "Invalid session")
        assert "expired" in response.json()["message"]

    def test_lists_owned_then_shared(self, client, otter):
        otter.speeches = AggregationResult(by_source={
            "owned": [{"otid": "o1", "title": "Standup", "duration": 90, "created_at": 1700000000}],
            "shared": [{"otid": "s1"}],
        })
        session_id = _login(client)

        response = client.get("/api/speech-ids", headers={"session-id": session_id})

        assert response.status_code == 200
        body = response.json()
        assert body["total_count"] == 2
        assert body["speech_ids"] == [
            {"id": "o1", "title": "Standup", "created_at": 1700000000, "duration": 90, "source": "owned"},
            {"id": "s1", "title": "Untitled", "created_at": None, "duration": 0, "source": "shared"},
        ]

    def test_empty_account(self, client):
        session_id = _login(client)

        body = client.get("/api/speech-ids", headers={"session-id": session_id}).json()

        assert body == {"total_count": 0, "speech_ids": []}


class TestTranscript:
    def test_returns_joined_transcript(self, client, otter):
        otter.speech_result = Envelope(200, {"speech": {
            "title": "Standup",
            "duration": 120,
            "created_at": 1700000000,
            "speakers": [{"id": 1, "speaker_name": "Alice"}],
            "transcripts": [
                {"transcript": "Good morning.", "speaker_id": 1},
                {"transcript": "Let's begin.", "speaker_id": 1},
            ],
        }})
        session_id = _login(client)

        response = client.get("/api/transcript/sp-1", headers={"session-id": session_id})

        assert response.status_code == 200
        body = response.json()
        assert body["speech_id"] == "sp-1"
        assert body["title"] == "Standup"
        assert body["transcript_text"] == "Good morning.\nLet's begin."
        assert body["speakers"] == [{"id": 1, "speaker_name": "Alice"}]
        assert len(body["structured_transcript"]) == 2

    def test_speech_without_transcripts(self, client, otter):
        otter.speech_result = Envelope(200, {"speech": {"otid": "sp-1"}})
        session_id = _login(client)

        body = client.get("/api/transcript/sp-1", headers={"session-id": session_id}).json()

        assert body["title"] == "Untitled"
        assert body["transcript_text"] == ""
        assert body["speakers"] == []
        assert body["structured_transcript"] is None

    def test_remote_404(self, client, otter):
        otter.speech_result = Envelope(404, {"detail": "not found"})
        session_id = _login(client)

        response = client.get("/api/transcript/missing", headers={"session-id": session_id})

        _assert_error(response, 404, "Speech not found")
        assert "missing" in response.json()["message"]

    def test_remote_error_is_502(self, client, otter):
        otter.speech_result = Envelope(500, "oops")
        session_id = _login(client)

        response = client.get("/api/transcript/sp-1", headers={"session-id": session_id})

        _assert_error(response, 502, "Failed to get transcript")

    def test_transport_error_is_500(self, client, otter):
        otter.speech_result = GetSpeechFailed("timeout")
        session_id = _login(client)

        response = client.get("/api/transcript/sp-1", headers={"session-id": session_id})

        _assert_error(response, 500, "Failed to get transcript")

    def test_requires_session(self, client):
        _assert_error(client.get("/api/transcript/sp-1"), 401, "Session ID required")
