"""Tests for GET /health."""

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from motorscope.api.app import create_app
from motorscope.api.dependencies import get_service


def _make_client(store_healthy=True, backend_error=None):
    service = MagicMock()
    service.store.health_check = AsyncMock(return_value=store_healthy)
    service.backend.health_check = AsyncMock(return_value=True, side_effect=backend_error)

    app = create_app()
    app.dependency_overrides[get_service] = lambda: service
    return TestClient(app)


class TestHealthEndpoint:
    """Test /health component checks."""

    def test_all_healthy(self):
        resp = _make_client().get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["components"]["store"]["status"] == "healthy"
        assert data["components"]["backend"]["status"] == "healthy"

    def test_store_unhealthy(self):
        data = _make_client(store_healthy=False).get("/health").json()

        assert data["status"] == "degraded"
        assert data["components"]["store"]["status"] == "unhealthy"

    def test_backend_probe_raises(self):
        data = _make_client(backend_error=Exception("Connection refused")).get("/health").json()

        assert data["status"] == "degraded"
        assert data["components"]["backend"]["details"] == {"error": "Connection refused"}

    def test_request_id_echoed(self):
        resp = _make_client().get("/health", headers={"X-Request-ID": "req-123"})

        assert resp.headers["X-Request-ID"] == "req-123"
