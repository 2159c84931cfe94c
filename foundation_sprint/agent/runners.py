"""Agent runners and synthesizers.

Each runner makes exactly one provider call with a fixed system prompt,
extracts the embedded JSON and parses it into the role's insight model.
Provider failures propagate; malformed output never does.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from foundation_sprint.agent import prompts
from foundation_sprint.agent.llm_helpers import extract_structured
from foundation_sprint.agent.provider import DEFAULT_MAX_OUTPUT_TOKENS, TextCompletionProvider
from foundation_sprint.domain.sprint import CUSTOMER_RESEARCH, FACILITATOR, PRODUCT_STRATEGY, Sprint
from foundation_sprint.schemas.insights import (
    AgentInsight,
    CustomerResearchInsight,
    FacilitatorInsight,
    FoundingHypothesis,
    ProductStrategyInsight,
    Recommendations,
    parse_model_output,
)
from foundation_sprint.schemas.sprint import ProductIdea

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AgentRole:
    key: str
    insight_model: type[AgentInsight]
    system_prompt: str
    update_system_prompt: str
    build_prompt: Callable[[ProductIdea], str]


AGENT_ROLES: dict[str, AgentRole] = {
    FACILITATOR: AgentRole(
        key=FACILITATOR,
        insight_model=FacilitatorInsight,
        system_prompt=prompts.FACILITATOR_SYSTEM_PROMPT,
        update_system_prompt=prompts.FACILITATOR_UPDATE_SYSTEM_PROMPT,
        build_prompt=prompts.build_facilitator_prompt,
    ),
    CUSTOMER_RESEARCH: AgentRole(
        key=CUSTOMER_RESEARCH,
        insight_model=CustomerResearchInsight,
        system_prompt=prompts.CUSTOMER_RESEARCH_SYSTEM_PROMPT,
        update_system_prompt=prompts.CUSTOMER_RESEARCH_UPDATE_SYSTEM_PROMPT,
        build_prompt=prompts.build_customer_research_prompt,
    ),
    PRODUCT_STRATEGY: AgentRole(
        key=PRODUCT_STRATEGY,
        insight_model=ProductStrategyInsight,
        system_prompt=prompts.PRODUCT_STRATEGY_SYSTEM_PROMPT,
        update_system_prompt=prompts.PRODUCT_STRATEGY_UPDATE_SYSTEM_PROMPT,
        build_prompt=prompts.build_product_strategy_prompt,
    ),
}


async def run_agent(
    role: AgentRole,
    provider: TextCompletionProvider,
    product_idea: ProductIdea,
    research_context: str | None = None,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
) -> AgentInsight:
    """Run one agent role against the product idea.

    With research_context the role's update system prompt and the shared
    research prompt are used instead of the first-round ones.
    """
    if research_context is None:
        system_prompt = role.system_prompt
        prompt = role.build_prompt(product_idea)
    else:
        system_prompt = role.update_system_prompt
        prompt = prompts.build_update_prompt(product_idea, research_context)

    text = await provider.generate(prompt, system_prompt, max_output_tokens)
    insight = parse_model_output(role.insight_model, extract_structured(text))
    logger.debug("agent_completed", agent=role.key, research_round=research_context is not None)
    return insight


async def run_facilitator(
    provider: TextCompletionProvider,
    product_idea: ProductIdea,
    research_context: str | None = None,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
) -> FacilitatorInsight:
    return await run_agent(
        AGENT_ROLES[FACILITATOR], provider, product_idea, research_context, max_output_tokens
    )


async def run_customer_research(
    provider: TextCompletionProvider,
    product_idea: ProductIdea,
    research_context: str | None = None,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
) -> CustomerResearchInsight:
    return await run_agent(
        AGENT_ROLES[CUSTOMER_RESEARCH], provider, product_idea, research_context, max_output_tokens
    )


async def run_product_strategy(
    provider: TextCompletionProvider,
    product_idea: ProductIdea,
    research_context: str | None = None,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
) -> ProductStrategyInsight:
    return await run_agent(
        AGENT_ROLES[PRODUCT_STRATEGY], provider, product_idea, research_context, max_output_tokens
    )


def hypothesis_context(sprint: Sprint) -> dict[str, Any]:
    return {
        "productIdea": sprint.product_idea.model_dump(by_alias=True, exclude_none=True),
        "agentInsights": sprint.agent_payloads(),
        "decisions": sprint.decisions.model_dump(mode="json", exclude_none=True),
        "researchData": dict(sprint.research_data),
    }


async def generate_founding_hypothesis(
    provider: TextCompletionProvider,
    sprint: Sprint,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
) -> FoundingHypothesis:
    """Synthesize the founding hypothesis from everything the sprint collected."""
    text = await provider.generate(
        prompts.build_hypothesis_prompt(hypothesis_context(sprint)),
        prompts.HYPOTHESIS_SYSTEM_PROMPT,
        max_output_tokens,
    )
    return parse_model_output(FoundingHypothesis, extract_structured(text))


async def generate_recommendations(
    provider: TextCompletionProvider,
    sprint: Sprint,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
) -> Recommendations:
    """Turn the hypothesis and agent insights into next steps."""
    hypothesis = sprint.founding_hypothesis.to_payload() if sprint.founding_hypothesis else None
    context = {"hypothesis": hypothesis, "insights": sprint.agent_payloads()}
    text = await provider.generate(
        prompts.build_recommendations_prompt(context),
        prompts.RECOMMENDATIONS_SYSTEM_PROMPT,
        max_output_tokens,
    )
    return parse_model_output(Recommendations, extract_structured(text))
