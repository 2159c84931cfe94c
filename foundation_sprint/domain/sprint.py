"""Sprint record and agent-output keys.

The Sprint dataclass is owned by the orchestrator; nothing else mutates it.
"""
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from foundation_sprint.domain.phases import SprintPhase, SprintStatus
from foundation_sprint.schemas.insights import AgentInsight, FoundingHypothesis, Recommendations
from foundation_sprint.schemas.sprint import Decisions, ProductIdea, ResearchRequest

FACILITATOR = "facilitator"
CUSTOMER_RESEARCH = "customerResearch"
PRODUCT_STRATEGY = "productStrategy"

# Fixed order for a round and for research request extraction
AGENT_ORDER: tuple[str, ...] = (FACILITATOR, CUSTOMER_RESEARCH, PRODUCT_STRATEGY)


def updated_key(agent_key: str) -> str:
    """Key under which the research-informed round stores an agent's insight."""
    return f"{agent_key}_updated"


def new_sprint_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Sprint:
    id: str
    product_idea: ProductIdea
    phase: SprintPhase = SprintPhase.INITIALIZATION
    status: SprintStatus = SprintStatus.RUNNING
    agents: dict[str, AgentInsight] = field(default_factory=dict)
    research_requests: list[ResearchRequest] = field(default_factory=list)
    research_data: dict[str, str] = field(default_factory=dict)
    decisions: Decisions = field(default_factory=Decisions)
    founding_hypothesis: FoundingHypothesis | None = None
    recommendations: Recommendations | None = None
    error: str | None = None
    start_time: datetime = field(default_factory=utcnow)
    end_time: datetime | None = None

    @property
    def duration_ms(self) -> int | None:
        """Milliseconds from start to completion, None while not completed."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) // timedelta(milliseconds=1)

    def agent_payloads(self) -> dict[str, dict]:
        return {key: insight.to_payload() for key, insight in self.agents.items()}
