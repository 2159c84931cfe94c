"""Tests for health and readiness endpoints."""
import pytest
from fastapi.testclient import TestClient

from foundation_sprint.main import create_app

pytestmark = pytest.mark.integration


def test_health_ok(api_client):
    response = api_client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "foundation-sprint"}


def test_health_503_while_shutting_down(app, api_client):
    app.state.shutting_down = True
    response = api_client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"


def test_ready_with_orchestrator(api_client):
    response = api_client.get("/api/ready")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["checks"] == {"orchestrator": True}
    assert body["active_tasks"] == 0


def test_ready_degraded_without_orchestrator(test_settings):
    client = TestClient(create_app(settings=test_settings))
    response = client.get("/api/ready")

    assert response.status_code == 503
    assert response.json()["checks"] == {"orchestrator": False}


def test_shutdown_flips_health_flag(app):
    with TestClient(app) as client:
        assert client.get("/api/health").status_code == 200
    assert app.state.shutting_down is True
