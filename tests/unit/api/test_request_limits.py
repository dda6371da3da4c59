"""Tests for API request size limits and health."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from dust_vacuum import __version__
from dust_vacuum.api.endpoints import get_orchestrator
from dust_vacuum.api.main import MAX_REQUEST_SIZE, app


@pytest.fixture
def client(orchestrator) -> Iterator[TestClient]:
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestRequestSizeLimits:
    def test_oversized_request_returns_413(self, client):
        """Request with Content-Length exceeding limit returns 413."""
        response = client.post(
            "/routes/check",
            json={"selected": []},
            headers={"Content-Length": str(MAX_REQUEST_SIZE + 1)},
        )
        assert response.status_code == 413
        assert response.json()["detail"] == "Request too large"

    def test_malformed_content_length_returns_400(self, client):
        response = client.post(
            "/routes/check",
            json={"selected": []},
            headers={"Content-Length": "lots"},
        )
        assert response.status_code == 400

    def test_normal_request_accepted(self, client):
        response = client.post("/routes/check", json={"selected": []})
        assert response.status_code == 200
        assert response.json() == []


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}
