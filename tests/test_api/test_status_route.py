"""Tests for GET /status."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from motorscope.api.app import create_app
from motorscope.api.auth import verify_api_key
from motorscope.api.dependencies import get_orchestrator
from motorscope.auth.schemas import Identity, Session, SessionStatus
from motorscope.orchestrator.alarms import Alarm
from motorscope.refresh.schemas import RefreshStatus


def _make_client():
    orchestrator = MagicMock()
    orchestrator.sessions.session = Session(
        status=SessionStatus.AUTHENTICATED,
        session_token="secret-token",
        identity=Identity(id="user_1", email="driver@example.com"),
    )
    orchestrator.status_store.get = AsyncMock(
        return_value=RefreshStatus(is_running=True, last_run_count=7)
    )
    orchestrator.alarms.get_all.return_value = [
        Alarm(
            name="refresh",
            scheduled_time=datetime(2025, 10, 10, 13, 0, tzinfo=timezone.utc),
            period_seconds=3600,
        ),
        Alarm(
            name="auth-check",
            scheduled_time=datetime(2025, 10, 10, 12, 5, tzinfo=timezone.utc),
        ),
    ]

    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    return TestClient(app)


class TestStatusEndpoint:
    def test_status(self):
        resp = _make_client().get("/status")

        assert resp.status_code == 200
        data = resp.json()
        assert data["session"]["status"] == "authenticated"
        assert data["session"]["identity"]["email"] == "driver@example.com"
        assert data["refresh"]["isRunning"] is True
        assert data["refresh"]["lastRunCount"] == 7
        assert data["alarms"][0] == {
            "name": "refresh",
            "scheduled_time": "2025-10-10T13:00:00+00:00",
            "period_minutes": 60.0,
        }
        assert data["alarms"][1]["period_minutes"] is None

    def test_token_not_exposed(self):
        resp = _make_client().get("/status")

        assert "secret-token" not in resp.text
