"""Research request extraction and research context rendering.

Pure functions with no external dependencies.
"""
from collections.abc import Mapping, Sequence

from foundation_sprint.domain.sprint import AGENT_ORDER, CUSTOMER_RESEARCH
from foundation_sprint.schemas.insights import AgentInsight
from foundation_sprint.schemas.sprint import ResearchRequest

MAX_RESEARCH_REQUESTS = 8

VALIDATION_GUIDANCE = "Conduct customer research to validate this assumption"


def extract_research_requests(insights: Sequence[AgentInsight | None]) -> list[ResearchRequest]:
    """Derive research prompts from one round of agent insights.

    Args:
        insights: Facilitator, customer research and product strategy insights,
            in that order (None for an agent with no output)

    Returns:
        At most MAX_RESEARCH_REQUESTS requests. Per agent, research_priorities
        come first, then customer_validation.research_questions, each in
        list order; anything beyond the cap is dropped from the end.
    """
    requests: list[ResearchRequest] = []
    for agent_key, insight in zip(AGENT_ORDER, insights):
        if insight is None:
            continue

        for i, priority in enumerate(insight.research_priorities or []):
            requests.append(ResearchRequest(
                id=f"{agent_key}_{i}",
                agent=agent_key,
                type="priority_research",
                question=priority,
                urgency="high",
                guidance=f"Research this priority area identified by {agent_key}",
            ))

        validation = insight.customer_validation
        questions = validation.research_questions if validation else None
        for i, question in enumerate(questions or []):
            requests.append(ResearchRequest(
                id=f"customer_validation_{i}",
                agent=CUSTOMER_RESEARCH,
                type="customer_validation",
                question=question,
                urgency="high",
                guidance=VALIDATION_GUIDANCE,
            ))

    return requests[:MAX_RESEARCH_REQUESTS]


def build_research_context(research_data: Mapping[str, str]) -> str:
    """Render research findings as "key: value" lines for agent prompts."""
    return "\n".join(f"{key}: {value}" for key, value in research_data.items())
