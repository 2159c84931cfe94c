"""API-specific test fixtures.

Apps are built with a pre-wired orchestrator over ProviderFake, so the
lifespan never constructs an Anthropic client.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from foundation_sprint.agent.provider_fake import ProviderFake
from foundation_sprint.core.config import Settings
from foundation_sprint.main import create_app
from foundation_sprint.services.sprint_orchestrator import SprintOrchestrator
from foundation_sprint.services.sprint_store import InMemorySprintStore


@pytest.fixture
def test_settings():
    return Settings(anthropic_api_key="", debug=True)


@pytest.fixture
def make_app(test_settings):
    """Factory: FastAPI app over an orchestrator backed by the given fake scenario."""

    def _make(scenario: str = "happy_path"):
        orchestrator = SprintOrchestrator(ProviderFake(scenario=scenario), InMemorySprintStore())
        return create_app(settings=test_settings, orchestrator=orchestrator)

    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def api_client(app):
    """Sync TestClient with the lifespan running."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
async def async_client(app):
    """In-process AsyncClient sharing the test's event loop with the orchestrator."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await app.state.orchestrator.shutdown()
