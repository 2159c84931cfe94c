"""Tests for SprintOrchestrator using ProviderFake scenarios.

Covers:
- Sprint creation, validation and unique ids
- First round: agent insights, research requests, phase progression
- Research submission: trigger once, late/early merges without re-run
- Decisions: hypothesis synthesis, completion, conflicts and validation
- Results: duration, recommendation caching, unknown ids
- Failure scenarios for each round and for synthesis
- drain/shutdown of background rounds
- Stores that hand out copies: no lost merges
"""

import asyncio
import copy
from datetime import UTC, datetime, timedelta

import pytest

from foundation_sprint.agent.provider_fake import HYPOTHESIS, RECOMMENDATIONS, ProviderFake
from foundation_sprint.core.exceptions import (
    ConflictError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from foundation_sprint.domain.phases import SprintPhase, SprintStatus
from foundation_sprint.schemas.insights import FoundingHypothesis
from foundation_sprint.services import sprint_orchestrator as orchestrator_module
from foundation_sprint.services.sprint_orchestrator import SprintOrchestrator
from foundation_sprint.services.sprint_store import InMemorySprintStore

pytestmark = pytest.mark.unit

BASE_KEYS = {"facilitator", "customerResearch", "productStrategy"}
UPDATED_KEYS = {"facilitator_updated", "customerResearch_updated", "productStrategy_updated"}


class CopyingSprintStore(InMemorySprintStore):
    """Store that never shares Sprint instances, like a database-backed one."""

    async def get(self, sprint_id):
        sprint = await super().get(sprint_id)
        return copy.deepcopy(sprint)

    async def put(self, sprint):
        await super().put(copy.deepcopy(sprint))


# ---------------------------------------------------------------------------
# initialize_sprint
# ---------------------------------------------------------------------------


class TestInitializeSprint:
    @pytest.mark.asyncio
    async def test_returns_unique_ids(self, orchestrator, product_idea):
        ids = {await orchestrator.initialize_sprint(product_idea) for _ in range(5)}
        assert len(ids) == 5

    @pytest.mark.asyncio
    async def test_status_right_after_start(self, orchestrator, product_idea):
        sprint_id = await orchestrator.initialize_sprint(product_idea)
        status = await orchestrator.get_sprint_status(sprint_id)

        assert status["phase"] in {"initialization", "agent_analysis", "research_collection"}
        assert status["status"] == "running"
        assert "error" not in status

    @pytest.mark.asyncio
    async def test_accepts_product_idea_model(self, orchestrator):
        from foundation_sprint.schemas.sprint import ProductIdea

        sprint_id = await orchestrator.initialize_sprint(ProductIdea(name="A", description="B"))
        sprint = await orchestrator.store.get(sprint_id)
        assert sprint.product_idea.name == "A"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("idea", [
        None,
        "ShelfSense",
        {"description": "No name"},
        {"name": "No description"},
        {"name": "  ", "description": "Blank name"},
        {"name": "Blank description", "description": ""},
    ])
    async def test_invalid_product_idea_rejected(self, orchestrator, idea):
        with pytest.raises(ValidationError):
            await orchestrator.initialize_sprint(idea)
        assert len(orchestrator.store) == 0
        assert orchestrator.active_tasks == 0

    @pytest.mark.asyncio
    async def test_stamps_start_time_from_clock(self, product_idea):
        t0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        orch = SprintOrchestrator(ProviderFake(), InMemorySprintStore(), clock=lambda: t0)
        sprint_id = await orch.initialize_sprint(product_idea)

        sprint = await orch.store.get(sprint_id)
        assert sprint.start_time == t0
        await orch.shutdown()


# ---------------------------------------------------------------------------
# First round
# ---------------------------------------------------------------------------


class TestAgentAnalysis:
    @pytest.mark.asyncio
    async def test_round_completes_into_research_collection(self, orchestrator, product_idea):
        sprint_id = await orchestrator.initialize_sprint(product_idea)
        await orchestrator.drain()

        sprint = await orchestrator.store.get(sprint_id)
        assert set(sprint.agents) == BASE_KEYS
        assert sprint.phase == SprintPhase.RESEARCH_COLLECTION
        assert sprint.status == SprintStatus.RUNNING
        assert len(sprint.research_requests) <= 8

    @pytest.mark.asyncio
    async def test_research_requests_from_canned_insights(self, orchestrator, product_idea):
        """3 facilitator priorities + 3 validation questions + 4 strategy priorities, capped at 8."""
        sprint_id = await orchestrator.initialize_sprint(product_idea)
        await orchestrator.drain()

        status = await orchestrator.get_sprint_status(sprint_id)
        assert [r.id for r in status["research_requests"]] == [
            "facilitator_0",
            "facilitator_1",
            "facilitator_2",
            "customer_validation_0",
            "customer_validation_1",
            "customer_validation_2",
            "productStrategy_0",
            "productStrategy_1",
        ]

    @pytest.mark.asyncio
    async def test_three_agents_called_once_each(self, orchestrator, provider_fake, product_idea):
        await orchestrator.initialize_sprint(product_idea)
        await orchestrator.drain()

        assert sorted(call.role for call in provider_fake.calls) == sorted(BASE_KEYS)

    @pytest.mark.asyncio
    async def test_max_output_tokens_forwarded(self, product_idea):
        fake = ProviderFake()
        orch = SprintOrchestrator(fake, InMemorySprintStore(), max_output_tokens=321)
        await orch.initialize_sprint(product_idea)
        await orch.drain()

        assert {call.max_output_tokens for call in fake.calls} == {321}

    @pytest.mark.asyncio
    async def test_phase_is_agent_analysis_while_round_runs(self, make_orchestrator, product_idea):
        hold = asyncio.Event()
        orch = make_orchestrator(hold=hold)
        sprint_id = await orch.initialize_sprint(product_idea)
        await asyncio.sleep(0.01)

        status = await orch.get_sprint_status(sprint_id)
        assert status["phase"] == "agent_analysis"
        assert status["agent_progress"] == {}

        hold.set()
        await orch.drain()
        assert (await orch.get_sprint_status(sprint_id))["phase"] == "research_collection"

    @pytest.mark.asyncio
    async def test_provider_failure_marks_sprint_error(self, make_orchestrator, product_idea):
        orch = make_orchestrator("llm_failure")
        sprint_id = await orch.initialize_sprint(product_idea)
        await orch.drain()

        status = await orch.get_sprint_status(sprint_id)
        assert status["status"] == "error"
        assert status["error"]
        assert "rate limit" in status["error"]
        assert status["phase"] == "agent_analysis"
        assert status["agent_progress"] == {}
        assert status["research_requests"] == []

    @pytest.mark.asyncio
    async def test_malformed_output_still_advances(self, make_orchestrator, product_idea):
        orch = make_orchestrator("malformed_json")
        sprint_id = await orch.initialize_sprint(product_idea)
        await orch.drain()

        status = await orch.get_sprint_status(sprint_id)
        assert status["phase"] == "research_collection"
        assert status["research_requests"] == []
        assert status["agent_progress"]["facilitator"]["reasoning"] == "Could not parse structured response"

    @pytest.mark.asyncio
    async def test_error_outside_provider_call_marks_sprint_error(
        self, orchestrator, product_idea, monkeypatch
    ):
        def explode(insights):
            raise RuntimeError("extractor exploded")

        monkeypatch.setattr(orchestrator_module, "extract_research_requests", explode)
        sprint_id = await orchestrator.initialize_sprint(product_idea)
        await orchestrator.drain()

        status = await orchestrator.get_sprint_status(sprint_id)
        assert status["status"] == "error"
        assert status["error"] == "extractor exploded"
        assert status["phase"] == "agent_analysis"


# ---------------------------------------------------------------------------
# Research submission
# ---------------------------------------------------------------------------


class TestSubmitResearch:
    @pytest.mark.asyncio
    async def test_unknown_sprint(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.submit_research("missing", {"a": "b"})

    @pytest.mark.asyncio
    async def test_submission_runs_research_round(self, orchestrator, provider_fake, product_idea):
        sprint_id = await orchestrator.initialize_sprint(product_idea)
        await orchestrator.drain()

        triggered = await orchestrator.submit_research(sprint_id, {"facilitator_0": "Weekly"})
        assert triggered is True
        assert (await orchestrator.get_sprint_status(sprint_id))["phase"] == "research_analysis"

        await orchestrator.drain()
        sprint = await orchestrator.store.get(sprint_id)
        assert sprint.phase == SprintPhase.DECISION_MAKING
        assert set(sprint.agents) == BASE_KEYS | UPDATED_KEYS

        update_calls = [c for c in provider_fake.calls if c.role.endswith("_updated")]
        assert len(update_calls) == 3
        assert all("facilitator_0: Weekly" in c.prompt for c in update_calls)

    @pytest.mark.asyncio
    async def test_later_submission_merges_without_rerun(
        self, orchestrator, provider_fake, drive_to_decisions
    ):
        sprint_id = await drive_to_decisions(orchestrator)

        triggered = await orchestrator.submit_research(
            sprint_id, {"facilitator_0": "Daily, revised", "customer_validation_1": "The owner"}
        )
        await orchestrator.drain()

        assert triggered is False
        sprint = await orchestrator.store.get(sprint_id)
        assert sprint.phase == SprintPhase.DECISION_MAKING
        assert sprint.research_data == {
            "facilitator_0": "Daily, revised",
            "customer_validation_1": "The owner",
        }
        assert len([c for c in provider_fake.calls if c.role.endswith("_updated")]) == 3

    @pytest.mark.asyncio
    async def test_early_submission_is_kept_for_the_research_round(self, make_orchestrator, product_idea):
        hold = asyncio.Event()
        orch = make_orchestrator(hold=hold)
        sprint_id = await orch.initialize_sprint(product_idea)
        await asyncio.sleep(0.01)

        assert await orch.submit_research(sprint_id, {"early": "note"}) is False

        hold.set()
        await orch.drain()
        sprint = await orch.store.get(sprint_id)
        assert sprint.phase == SprintPhase.RESEARCH_COLLECTION

        assert await orch.submit_research(sprint_id, {"facilitator_0": "Weekly"}) is True
        await orch.drain()
        prompt = orch.provider.calls_for("facilitator_updated")[0].prompt
        assert "early: note\nfacilitator_0: Weekly" in prompt

    @pytest.mark.asyncio
    async def test_concurrent_submissions_trigger_once(self, make_orchestrator, product_idea):
        orch = make_orchestrator()
        sprint_id = await orch.initialize_sprint(product_idea)
        await orch.drain()

        results = await asyncio.gather(
            orch.submit_research(sprint_id, {"a": "1"}),
            orch.submit_research(sprint_id, {"b": "2"}),
        )
        await orch.drain()

        assert sorted(results) == [False, True]
        assert len(orch.provider.calls_for("facilitator_updated")) == 1

    @pytest.mark.asyncio
    async def test_non_text_findings_rejected(self, orchestrator, product_idea):
        sprint_id = await orchestrator.initialize_sprint(product_idea)
        with pytest.raises(ValidationError):
            await orchestrator.submit_research(sprint_id, {"facilitator_0": 42})
        with pytest.raises(ValidationError):
            await orchestrator.submit_research(sprint_id, ["not", "a", "mapping"])

    @pytest.mark.asyncio
    async def test_research_round_failure(self, make_orchestrator, drive_to_decisions):
        orch = make_orchestrator("research_failure")
        sprint_id = await drive_to_decisions(orch)

        status = await orch.get_sprint_status(sprint_id)
        assert status["status"] == "error"
        assert status["phase"] == "research_analysis"
        assert set(status["agent_progress"]) == BASE_KEYS

    @pytest.mark.asyncio
    async def test_submission_to_failed_sprint_is_merged_only(self, make_orchestrator, product_idea):
        orch = make_orchestrator("llm_failure")
        sprint_id = await orch.initialize_sprint(product_idea)
        await orch.drain()

        assert await orch.submit_research(sprint_id, {"a": "b"}) is False
        sprint = await orch.store.get(sprint_id)
        assert sprint.research_data == {"a": "b"}
        assert sprint.status == SprintStatus.ERROR


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class TestMakeDecisions:
    @pytest.mark.asyncio
    async def test_completes_sprint(self, orchestrator, drive_to_decisions, decisions):
        sprint_id = await drive_to_decisions(orchestrator)

        hypothesis = await orchestrator.make_decisions(sprint_id, decisions)

        sprint = await orchestrator.store.get(sprint_id)
        assert isinstance(hypothesis, FoundingHypothesis)
        assert hypothesis == sprint.founding_hypothesis
        assert sprint.status == SprintStatus.COMPLETED
        assert sprint.phase == SprintPhase.HYPOTHESIS_GENERATION
        assert sprint.end_time >= sprint.start_time
        assert sprint.decisions.implementation_approach == "web_app"

    @pytest.mark.asyncio
    async def test_unknown_sprint(self, orchestrator, decisions):
        with pytest.raises(NotFoundError):
            await orchestrator.make_decisions("missing", decisions)

    @pytest.mark.asyncio
    async def test_before_decision_phase_is_conflict(self, orchestrator, product_idea, decisions):
        sprint_id = await orchestrator.initialize_sprint(product_idea)
        await orchestrator.drain()

        with pytest.raises(ConflictError, match="research_collection"):
            await orchestrator.make_decisions(sprint_id, decisions)

    @pytest.mark.asyncio
    async def test_second_submission_is_conflict(self, orchestrator, drive_to_decisions, decisions):
        sprint_id = await drive_to_decisions(orchestrator)
        first = await orchestrator.make_decisions(sprint_id, decisions)

        with pytest.raises(ConflictError, match="completed"):
            await orchestrator.make_decisions(sprint_id, decisions)

        sprint = await orchestrator.store.get(sprint_id)
        assert sprint.founding_hypothesis is first
        assert len(orchestrator.provider.calls_for(HYPOTHESIS)) == 1

    @pytest.mark.asyncio
    async def test_too_few_decisions(self, orchestrator, drive_to_decisions):
        sprint_id = await drive_to_decisions(orchestrator)

        with pytest.raises(ValidationError, match="At least 3"):
            await orchestrator.make_decisions(sprint_id, {"core_problem": "Stock-outs", "gtm_strategy": ""})

        sprint = await orchestrator.store.get(sprint_id)
        assert sprint.phase == SprintPhase.DECISION_MAKING
        assert sprint.decisions.filled_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [
        {"pricing": "freemium"},
        {"implementation_approach": "smart_fridge"},
    ])
    async def test_invalid_decisions(self, orchestrator, drive_to_decisions, decisions, bad):
        sprint_id = await drive_to_decisions(orchestrator)
        with pytest.raises(ValidationError):
            await orchestrator.make_decisions(sprint_id, {**decisions, **bad})

    @pytest.mark.asyncio
    async def test_synthesis_failure_marks_error_and_propagates(
        self, make_orchestrator, drive_to_decisions, decisions
    ):
        orch = make_orchestrator("synthesis_failure")
        sprint_id = await drive_to_decisions(orch)

        with pytest.raises(ProviderError):
            await orch.make_decisions(sprint_id, decisions)

        sprint = await orch.store.get(sprint_id)
        assert sprint.status == SprintStatus.ERROR
        assert sprint.phase == SprintPhase.HYPOTHESIS_GENERATION
        assert sprint.founding_hypothesis is None
        assert sprint.end_time is None

        with pytest.raises(ConflictError):
            await orch.make_decisions(sprint_id, decisions)

    @pytest.mark.asyncio
    async def test_decisions_reach_hypothesis_prompt(self, orchestrator, drive_to_decisions, decisions):
        sprint_id = await drive_to_decisions(orchestrator)
        await orchestrator.make_decisions(sprint_id, decisions)

        prompt = orchestrator.provider.calls_for(HYPOTHESIS)[0].prompt
        assert "Reorder suggestions" in prompt
        assert "facilitator_updated" in prompt


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TestGetResults:
    @pytest.mark.asyncio
    async def test_unknown_sprint(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.get_results("missing")

    @pytest.mark.asyncio
    async def test_before_completion(self, orchestrator, product_idea):
        sprint_id = await orchestrator.initialize_sprint(product_idea)
        await orchestrator.drain()

        results = await orchestrator.get_results(sprint_id)
        assert results["duration"] is None
        assert results["recommendations"] is None
        assert results["founding_hypothesis"] is None
        assert results["product_idea"].name == "ShelfSense"
        assert RECOMMENDATIONS not in {c.role for c in orchestrator.provider.calls}

    @pytest.mark.asyncio
    async def test_duration_matches_timestamps(self, drive_to_decisions, decisions):
        t0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        times = iter([t0, t0 + timedelta(minutes=12, milliseconds=250)])
        orch = SprintOrchestrator(ProviderFake(), InMemorySprintStore(), clock=lambda: next(times))
        sprint_id = await drive_to_decisions(orch)
        await orch.make_decisions(sprint_id, decisions)

        results = await orch.get_results(sprint_id)
        sprint = await orch.store.get(sprint_id)
        assert results["duration"] == 12 * 60 * 1000 + 250
        assert results["duration"] == (sprint.end_time - sprint.start_time) // timedelta(milliseconds=1)

    @pytest.mark.asyncio
    async def test_recommendations_cached(self, orchestrator, drive_to_decisions, decisions):
        sprint_id = await drive_to_decisions(orchestrator)
        await orchestrator.make_decisions(sprint_id, decisions)

        first = await orchestrator.get_results(sprint_id)
        second = await orchestrator.get_results(sprint_id)

        assert first["recommendations"]["immediate_actions"] == ["Interview 10 shop owners"]
        assert second["recommendations"] == first["recommendations"]
        assert len(orchestrator.provider.calls_for(RECOMMENDATIONS)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_results_generate_recommendations_once(
        self, orchestrator, drive_to_decisions, decisions
    ):
        sprint_id = await drive_to_decisions(orchestrator)
        await orchestrator.make_decisions(sprint_id, decisions)

        first, second = await asyncio.gather(
            orchestrator.get_results(sprint_id),
            orchestrator.get_results(sprint_id),
        )

        assert len(orchestrator.provider.calls_for(RECOMMENDATIONS)) == 1
        assert first["recommendations"] == second["recommendations"]
        assert first["recommendations"]["research_gaps"] == ["Supplier API availability"]

    @pytest.mark.asyncio
    async def test_failed_recommendations_are_retried_on_next_call(
        self, orchestrator, drive_to_decisions, decisions
    ):
        sprint_id = await drive_to_decisions(orchestrator)
        await orchestrator.make_decisions(sprint_id, decisions)
        orchestrator.provider.overrides[RECOMMENDATIONS] = ProviderError("quota exhausted")

        with pytest.raises(ProviderError):
            await orchestrator.get_results(sprint_id)
        sprint = await orchestrator.store.get(sprint_id)
        assert sprint.recommendations is None

        del orchestrator.provider.overrides[RECOMMENDATIONS]
        results = await orchestrator.get_results(sprint_id)
        assert results["recommendations"]["immediate_actions"] == ["Interview 10 shop owners"]

    @pytest.mark.asyncio
    async def test_results_contents(self, orchestrator, drive_to_decisions, decisions):
        sprint_id = await drive_to_decisions(orchestrator, {"facilitator_0": "Weekly"})
        hypothesis = await orchestrator.make_decisions(sprint_id, decisions)

        results = await orchestrator.get_results(sprint_id)
        assert results["founding_hypothesis"] == hypothesis.to_payload()
        assert set(results["agent_insights"]) == BASE_KEYS | UPDATED_KEYS
        assert results["research_summary"] == {"facilitator_0": "Weekly"}
        assert results["decisions"].core_problem == "Stock-outs on best sellers"

    @pytest.mark.asyncio
    async def test_results_are_copies(self, orchestrator, drive_to_decisions):
        sprint_id = await drive_to_decisions(orchestrator)
        results = await orchestrator.get_results(sprint_id)
        results["research_summary"]["injected"] = "x"

        sprint = await orchestrator.store.get(sprint_id)
        assert "injected" not in sprint.research_data


# ---------------------------------------------------------------------------
# Background task lifecycle
# ---------------------------------------------------------------------------


class TestTaskLifecycle:
    @pytest.mark.asyncio
    async def test_drain_leaves_no_tasks(self, orchestrator, product_idea):
        await orchestrator.initialize_sprint(product_idea)
        assert orchestrator.active_tasks == 1
        await orchestrator.drain()
        assert orchestrator.active_tasks == 0

    @pytest.mark.asyncio
    async def test_shutdown_cancels_in_flight_round(self, make_orchestrator, product_idea):
        orch = make_orchestrator(hold=asyncio.Event())
        sprint_id = await orch.initialize_sprint(product_idea)
        await asyncio.sleep(0.01)

        await orch.shutdown()

        assert orch.active_tasks == 0
        sprint = await orch.store.get(sprint_id)
        assert sprint.phase == SprintPhase.AGENT_ANALYSIS
        assert sprint.status == SprintStatus.RUNNING


# ---------------------------------------------------------------------------
# Stores that hand out copies
# ---------------------------------------------------------------------------


@pytest.fixture
async def held_orchestrator():
    """Orchestrator over a copying store whose provider waits on provider.hold."""
    orch = SprintOrchestrator(ProviderFake(hold=asyncio.Event()), CopyingSprintStore())
    yield orch
    await orch.shutdown()


class TestCopyingStore:
    @pytest.mark.asyncio
    async def test_merge_during_agent_round_survives(self, held_orchestrator, product_idea):
        orch = held_orchestrator
        sprint_id = await orch.initialize_sprint(product_idea)
        await asyncio.sleep(0.01)

        await orch.submit_research(sprint_id, {"early": "note"})
        orch.provider.hold.set()
        await orch.drain()

        sprint = await orch.store.get(sprint_id)
        assert sprint.phase == SprintPhase.RESEARCH_COLLECTION
        assert sprint.research_data == {"early": "note"}
        assert set(sprint.agents) == BASE_KEYS

    @pytest.mark.asyncio
    async def test_merge_during_research_round_survives(self, held_orchestrator, product_idea):
        orch = held_orchestrator
        orch.provider.hold.set()
        sprint_id = await orch.initialize_sprint(product_idea)
        await orch.drain()

        orch.provider.hold = asyncio.Event()
        assert await orch.submit_research(sprint_id, {"facilitator_0": "Weekly"}) is True
        await asyncio.sleep(0.01)
        assert await orch.submit_research(sprint_id, {"late": "Owners want SMS"}) is False
        orch.provider.hold.set()
        await orch.drain()

        sprint = await orch.store.get(sprint_id)
        assert sprint.phase == SprintPhase.DECISION_MAKING
        assert sprint.research_data == {"facilitator_0": "Weekly", "late": "Owners want SMS"}
        assert set(sprint.agents) == BASE_KEYS | UPDATED_KEYS

    @pytest.mark.asyncio
    async def test_full_flow_completes(self, drive_to_decisions, decisions):
        orch = SprintOrchestrator(ProviderFake(), CopyingSprintStore())
        sprint_id = await drive_to_decisions(orch)

        hypothesis = await orch.make_decisions(sprint_id, decisions)
        results = await orch.get_results(sprint_id)
        again = await orch.get_results(sprint_id)

        sprint = await orch.store.get(sprint_id)
        assert sprint.status == SprintStatus.COMPLETED
        assert sprint.founding_hypothesis == hypothesis
        assert results["recommendations"] == again["recommendations"]
        assert len(orch.provider.calls_for(RECOMMENDATIONS)) == 1

    @pytest.mark.asyncio
    async def test_synthesis_failure_recorded(self, drive_to_decisions, decisions):
        orch = SprintOrchestrator(ProviderFake(scenario="synthesis_failure"), CopyingSprintStore())
        sprint_id = await drive_to_decisions(orch)

        with pytest.raises(ProviderError):
            await orch.make_decisions(sprint_id, decisions)

        status = await orch.get_sprint_status(sprint_id)
        assert status["status"] == "error"
        assert status["phase"] == "hypothesis_generation"
