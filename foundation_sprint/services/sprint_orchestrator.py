"""SprintOrchestrator: the Foundation Sprint state machine.

Responsibilities:
- Sprint lifecycle: initialize, research submission, decisions, results, status
- Background agent rounds as retained asyncio tasks (fire-and-forget for callers)
- Phase changes validated against domain.phases; status is terminal once set
- Any failure in a background round recorded on the sprint, never raised

All Sprint mutation happens here. Readers get serialized copies. The store may
hand out copies: every write after an await re-reads the sprint first, so
merges made while a model call was in flight are kept.
"""

import asyncio
from collections.abc import Callable, Coroutine, Mapping
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from foundation_sprint.agent.provider import DEFAULT_MAX_OUTPUT_TOKENS, TextCompletionProvider
from foundation_sprint.agent.runners import (
    AGENT_ROLES,
    generate_founding_hypothesis,
    generate_recommendations,
    run_agent,
)
from foundation_sprint.core.exceptions import ConflictError, NotFoundError, ValidationError
from foundation_sprint.core.logging import sprint_log_context
from foundation_sprint.domain.phases import (
    SprintPhase,
    SprintStatus,
    is_before,
    validate_phase_transition,
    validate_status_transition,
)
from foundation_sprint.domain.research import build_research_context, extract_research_requests
from foundation_sprint.domain.sprint import AGENT_ORDER, Sprint, new_sprint_id, updated_key, utcnow
from foundation_sprint.schemas.insights import (
    AgentInsight,
    FoundingHypothesis,
    ModelOutput,
    Recommendations,
)
from foundation_sprint.schemas.sprint import MIN_DECISIONS, Decisions, ProductIdea, validation_message
from foundation_sprint.services.sprint_store import SprintStore

logger = structlog.get_logger(__name__)


class SprintOrchestrator:
    """Drives sprints from product idea to founding hypothesis."""

    def __init__(
        self,
        provider: TextCompletionProvider,
        store: SprintStore,
        *,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize with a provider and a sprint store.

        Args:
            provider: TextCompletionProvider (ProviderFake for tests, AnthropicProvider for production)
            store: SprintStore the sprints live in
            max_output_tokens: Token cap passed to every provider call
            clock: Source of timezone-aware timestamps
        """
        self.provider = provider
        self.store = store
        self.max_output_tokens = max_output_tokens
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()
        # sprint_id -> in-flight recommendation generation, shared by concurrent readers
        self._recommendation_tasks: dict[str, asyncio.Task] = {}

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def initialize_sprint(self, product_idea: ProductIdea | Mapping[str, Any] | None) -> str:
        """Create a sprint and start its agent analysis in the background.

        Args:
            product_idea: ProductIdea, or a camelCase/snake_case mapping of its fields

        Returns:
            The new sprint id; the first round has not necessarily started yet

        Raises:
            ValidationError: If the idea is missing, or name/description is missing or blank
        """
        idea = self._parse_product_idea(product_idea)

        sprint_id = new_sprint_id()
        while await self.store.get(sprint_id) is not None:
            sprint_id = new_sprint_id()

        sprint = Sprint(id=sprint_id, product_idea=idea, start_time=self._clock())
        await self.store.put(sprint)
        logger.info("sprint_initialized", sprint_id=sprint_id, product=idea.name)

        self._spawn(self._run_agent_analysis(sprint_id), name=f"agent_analysis:{sprint_id}")
        return sprint_id

    async def submit_research(self, sprint_id: str, research_data: Mapping[str, str]) -> bool:
        """Merge research findings; start the research round if the sprint is waiting for it.

        Returns:
            True when this submission triggered the research-informed round

        Raises:
            NotFoundError: Unknown sprint id
            ValidationError: If research_data is not a mapping of strings
        """
        sprint = await self._require(sprint_id)
        data = self._parse_research_data(research_data)
        bound = logger.bind(sprint_id=sprint_id, phase=sprint.phase.value)

        sprint.research_data.update(data)

        # Phase is claimed before the next await so a concurrent submission
        # cannot trigger the round twice.
        triggered = (
            sprint.phase == SprintPhase.RESEARCH_COLLECTION
            and validate_phase_transition(
                sprint.phase, SprintPhase.RESEARCH_ANALYSIS, sprint.status
            ).allowed
        )
        if triggered:
            self._advance(sprint, SprintPhase.RESEARCH_ANALYSIS)

        await self.store.put(sprint)

        if triggered:
            bound.info("research_submitted", entries=len(data), triggered=True)
            self._spawn(self._run_research_analysis(sprint_id), name=f"research_analysis:{sprint_id}")
        elif is_before(sprint.phase, SprintPhase.RESEARCH_COLLECTION):
            bound.info("research_submitted_early", entries=len(data))
        else:
            bound.info("research_merged", entries=len(data), status=sprint.status.value)
        return triggered

    async def make_decisions(
        self, sprint_id: str, decisions: Decisions | Mapping[str, Any]
    ) -> FoundingHypothesis:
        """Record decisions and synthesize the founding hypothesis.

        Raises:
            NotFoundError: Unknown sprint id
            ConflictError: Sprint is not running or not in decision_making
            ValidationError: Unknown keys, invalid implementation_approach, or
                fewer than MIN_DECISIONS filled decisions after the merge
            ProviderError: Hypothesis synthesis failed; the sprint is marked error
        """
        sprint = await self._require(sprint_id)
        bound = logger.bind(sprint_id=sprint_id)

        if sprint.status != SprintStatus.RUNNING:
            raise ConflictError(
                f"Sprint {sprint_id} is {sprint.status.value}; decisions can no longer be submitted"
            )
        if sprint.phase != SprintPhase.DECISION_MAKING:
            raise ConflictError(
                f"Sprint {sprint_id} is in phase {sprint.phase.value}; "
                f"decisions are accepted in {SprintPhase.DECISION_MAKING.value}"
            )

        merged = sprint.decisions.merge(self._parse_decisions(decisions))
        if merged.filled_count < MIN_DECISIONS:
            raise ValidationError(
                f"At least {MIN_DECISIONS} decisions are required, got {merged.filled_count}"
            )

        sprint.decisions = merged
        self._advance(sprint, SprintPhase.HYPOTHESIS_GENERATION)
        await self.store.put(sprint)
        bound.info("decisions_recorded", decisions=merged.filled_count)

        try:
            hypothesis = await generate_founding_hypothesis(
                self.provider, sprint, self.max_output_tokens
            )
        except Exception as exc:
            await self._record_failure(sprint_id, exc)
            raise

        sprint = await self._require(sprint_id)
        sprint.founding_hypothesis = hypothesis
        self._set_status(sprint, SprintStatus.COMPLETED)
        sprint.end_time = self._clock()
        await self.store.put(sprint)
        bound.info("sprint_completed", duration_ms=sprint.duration_ms)
        return hypothesis

    async def get_results(self, sprint_id: str) -> dict[str, Any]:
        """Return the sprint outcome.

        Recommendations are generated on the first call after completion and
        cached; before completion they are None.

        Raises:
            NotFoundError: Unknown sprint id
            ProviderError: Recommendation generation failed (nothing is cached)
        """
        sprint = await self._require(sprint_id)

        if sprint.status == SprintStatus.COMPLETED and sprint.recommendations is None:
            await self._shared_recommendations(sprint_id)
            sprint = await self._require(sprint_id)

        return {
            "product_idea": sprint.product_idea.model_copy(),
            "founding_hypothesis": _payload(sprint.founding_hypothesis),
            "decisions": sprint.decisions.model_copy(),
            "agent_insights": sprint.agent_payloads(),
            "research_summary": dict(sprint.research_data),
            "duration": sprint.duration_ms,
            "recommendations": _payload(sprint.recommendations),
        }

    async def get_sprint_status(self, sprint_id: str) -> dict[str, Any]:
        """Return phase, agent progress, research requests and status.

        ``error`` is included only when the sprint has failed.

        Raises:
            NotFoundError: Unknown sprint id
        """
        sprint = await self._require(sprint_id)
        status: dict[str, Any] = {
            "phase": sprint.phase.value,
            "agent_progress": sprint.agent_payloads(),
            "research_requests": [r.model_copy() for r in sprint.research_requests],
            "status": sprint.status.value,
        }
        if sprint.error is not None:
            status["error"] = sprint.error
        return status

    async def drain(self) -> None:
        """Wait until every background round has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel background rounds still in flight."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("orchestrator_tasks_cancelled", count=len(tasks))

    # ------------------------------------------------------------------
    # Background rounds
    # ------------------------------------------------------------------

    async def _run_agent_analysis(self, sprint_id: str) -> None:
        """First round: three agents on the bare product idea. Never raises."""
        with sprint_log_context(sprint_id, round="agent_analysis"):
            try:
                await self._agent_analysis(sprint_id)
            except Exception as exc:
                await self._record_failure(sprint_id, exc)

    async def _agent_analysis(self, sprint_id: str) -> None:
        sprint = await self._require(sprint_id)
        self._advance(sprint, SprintPhase.AGENT_ANALYSIS)
        await self.store.put(sprint)

        insights = await self._run_round(sprint.product_idea, research_context=None)

        sprint = await self._require(sprint_id)
        sprint.agents = dict(zip(AGENT_ORDER, insights))
        sprint.research_requests = extract_research_requests(insights)
        self._advance(sprint, SprintPhase.RESEARCH_COLLECTION)
        await self.store.put(sprint)
        logger.info(
            "agent_analysis_completed",
            sprint_id=sprint_id,
            research_requests=len(sprint.research_requests),
        )

    async def _run_research_analysis(self, sprint_id: str) -> None:
        """Second round: the same agents with the collected research. Never raises."""
        with sprint_log_context(sprint_id, round="research_analysis"):
            try:
                await self._research_analysis(sprint_id)
            except Exception as exc:
                await self._record_failure(sprint_id, exc)

    async def _research_analysis(self, sprint_id: str) -> None:
        sprint = await self._require(sprint_id)
        context = build_research_context(sprint.research_data)

        insights = await self._run_round(sprint.product_idea, research_context=context)

        sprint = await self._require(sprint_id)
        for key, insight in zip(AGENT_ORDER, insights):
            sprint.agents[updated_key(key)] = insight
        self._advance(sprint, SprintPhase.DECISION_MAKING)
        await self.store.put(sprint)
        logger.info("research_analysis_completed", sprint_id=sprint_id)

    async def _run_round(
        self, product_idea: ProductIdea, research_context: str | None
    ) -> list[AgentInsight]:
        # Joined as one unit: every agent finishes, then a single failure fails the round
        results = await asyncio.gather(
            *(
                run_agent(
                    AGENT_ROLES[key],
                    self.provider,
                    product_idea,
                    research_context,
                    self.max_output_tokens,
                )
                for key in AGENT_ORDER
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results

    async def _shared_recommendations(self, sprint_id: str) -> Recommendations:
        """Join the in-flight generation for this sprint, or start one."""
        task = self._recommendation_tasks.get(sprint_id)
        if task is None:
            task = self._spawn(
                self._generate_recommendations(sprint_id), name=f"recommendations:{sprint_id}"
            )
            self._recommendation_tasks[sprint_id] = task
            task.add_done_callback(lambda done: self._forget_recommendations(sprint_id, done))
        # A disconnecting caller must not cancel generation for the others
        return await asyncio.shield(task)

    async def _generate_recommendations(self, sprint_id: str) -> Recommendations:
        sprint = await self._require(sprint_id)
        if sprint.recommendations is not None:
            return sprint.recommendations

        recommendations = await generate_recommendations(
            self.provider, sprint, self.max_output_tokens
        )

        sprint = await self._require(sprint_id)
        sprint.recommendations = recommendations
        await self.store.put(sprint)
        logger.info("recommendations_generated", sprint_id=sprint_id)
        return recommendations

    def _forget_recommendations(self, sprint_id: str, task: asyncio.Task) -> None:
        if self._recommendation_tasks.get(sprint_id) is task:
            del self._recommendation_tasks[sprint_id]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "sprint_task_crashed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _require(self, sprint_id: str) -> Sprint:
        sprint = await self.store.get(sprint_id)
        if sprint is None:
            raise NotFoundError(sprint_id)
        return sprint

    def _advance(self, sprint: Sprint, target: SprintPhase) -> None:
        result = validate_phase_transition(sprint.phase, target, sprint.status)
        if not result.allowed:
            raise ConflictError(result.reason)
        logger.info(
            "sprint_phase_changed",
            sprint_id=sprint.id,
            from_phase=sprint.phase.value,
            to_phase=target.value,
        )
        sprint.phase = target

    def _set_status(self, sprint: Sprint, target: SprintStatus) -> None:
        result = validate_status_transition(sprint.status, target)
        if not result.allowed:
            raise ConflictError(result.reason)
        sprint.status = target

    def _fail(self, sprint: Sprint, exc: Exception) -> None:
        logger.error(
            "sprint_failed",
            sprint_id=sprint.id,
            phase=sprint.phase.value,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        if not validate_status_transition(sprint.status, SprintStatus.ERROR).allowed:
            return
        sprint.status = SprintStatus.ERROR
        sprint.error = str(exc) or type(exc).__name__

    async def _record_failure(self, sprint_id: str, exc: Exception) -> None:
        sprint = await self.store.get(sprint_id)
        if sprint is None:
            logger.error("sprint_failed_unknown", sprint_id=sprint_id, error=str(exc))
            return
        self._fail(sprint, exc)
        await self.store.put(sprint)

    @staticmethod
    def _parse_product_idea(product_idea: ProductIdea | Mapping[str, Any] | None) -> ProductIdea:
        if isinstance(product_idea, ProductIdea):
            return product_idea
        if not isinstance(product_idea, Mapping):
            raise ValidationError("productIdea is required and must be an object")
        try:
            return ProductIdea.model_validate(dict(product_idea))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid product idea: {validation_message(exc)}") from exc

    @staticmethod
    def _parse_research_data(research_data: Mapping[str, str]) -> dict[str, str]:
        if not isinstance(research_data, Mapping):
            raise ValidationError("researchData must be an object of research id to finding")
        bad = [key for key, value in research_data.items() if not isinstance(value, str)]
        if bad:
            raise ValidationError(f"Research findings must be text: {sorted(map(str, bad))}")
        return {str(key): value for key, value in research_data.items()}

    @staticmethod
    def _parse_decisions(decisions: Decisions | Mapping[str, Any]) -> Decisions:
        if isinstance(decisions, Decisions):
            return decisions
        if not isinstance(decisions, Mapping):
            raise ValidationError("decisions must be an object")
        try:
            return Decisions.model_validate(dict(decisions))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid decisions: {validation_message(exc)}") from exc


def _payload(model: ModelOutput | None) -> dict[str, Any] | None:
    return model.to_payload() if model is not None else None
