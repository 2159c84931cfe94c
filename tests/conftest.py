"""Shared test fixtures for all test groups."""

import pytest

from foundation_sprint.agent.provider_fake import ProviderFake
from foundation_sprint.services.sprint_orchestrator import SprintOrchestrator
from foundation_sprint.services.sprint_store import InMemorySprintStore

DECISIONS = {
    "target_customer": "Independent retailers with one location",
    "core_problem": "Stock-outs on best sellers",
    "differentiation": "Reorder suggestions",
    "implementation_approach": "web_app",
}


@pytest.fixture
def product_idea():
    """Product idea as the browser sends it (camelCase keys)."""
    return {
        "name": "ShelfSense",
        "description": "Inventory alerts for small shops",
        "targetMarket": "Independent retailers",
        "problemStatement": "Owners run out of best sellers without noticing",
    }


@pytest.fixture
def decisions():
    return dict(DECISIONS)


@pytest.fixture
def provider_fake():
    """Fresh ProviderFake with happy_path scenario (default)."""
    return ProviderFake(scenario="happy_path")


@pytest.fixture
def sprint_store():
    return InMemorySprintStore()


@pytest.fixture
async def orchestrator(provider_fake, sprint_store):
    """Orchestrator over the happy-path fake; background rounds cancelled on teardown."""
    orch = SprintOrchestrator(provider_fake, sprint_store)
    yield orch
    await orch.shutdown()


@pytest.fixture
async def make_orchestrator():
    """Factory for orchestrators over a given fake scenario."""
    created: list[SprintOrchestrator] = []

    def _make(scenario: str = "happy_path", **fake_kwargs) -> SprintOrchestrator:
        orch = SprintOrchestrator(ProviderFake(scenario=scenario, **fake_kwargs), InMemorySprintStore())
        created.append(orch)
        return orch

    yield _make

    for orch in created:
        await orch.shutdown()


@pytest.fixture
def drive_to_decisions(product_idea):
    """Async helper: start a sprint and run both rounds; returns the sprint id."""

    async def _drive(orch: SprintOrchestrator, research: dict[str, str] | None = None) -> str:
        sprint_id = await orch.initialize_sprint(product_idea)
        await orch.drain()
        await orch.submit_research(sprint_id, research or {"facilitator_0": "Weekly, per interviews"})
        await orch.drain()
        return sprint_id

    return _drive
