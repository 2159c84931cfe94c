"""ProviderFake: Scenario-based test double for TextCompletionProvider.

Provides deterministic, instant responses for 5 named scenarios:
- happy_path: Every role returns realistic canned JSON
- llm_failure: Every call fails (rate limit)
- research_failure: First round succeeds, the research-informed round fails
- synthesis_failure: Both rounds succeed, founding hypothesis synthesis fails
- malformed_json: Every call returns prose with no JSON object

Calls are routed by their system prompt to a role key and recorded in
``calls``. An optional ``hold`` event blocks every call until it is set,
which lets tests observe a sprint mid-round.
"""

import asyncio
import json
from dataclasses import dataclass

from foundation_sprint.agent import prompts
from foundation_sprint.agent.provider import DEFAULT_MAX_OUTPUT_TOKENS
from foundation_sprint.core.exceptions import ProviderError
from foundation_sprint.domain.sprint import CUSTOMER_RESEARCH, FACILITATOR, PRODUCT_STRATEGY, updated_key

HYPOTHESIS = "hypothesis"
RECOMMENDATIONS = "recommendations"

SYSTEM_PROMPT_ROLES: dict[str, str] = {
    prompts.FACILITATOR_SYSTEM_PROMPT: FACILITATOR,
    prompts.CUSTOMER_RESEARCH_SYSTEM_PROMPT: CUSTOMER_RESEARCH,
    prompts.PRODUCT_STRATEGY_SYSTEM_PROMPT: PRODUCT_STRATEGY,
    prompts.FACILITATOR_UPDATE_SYSTEM_PROMPT: updated_key(FACILITATOR),
    prompts.CUSTOMER_RESEARCH_UPDATE_SYSTEM_PROMPT: updated_key(CUSTOMER_RESEARCH),
    prompts.PRODUCT_STRATEGY_UPDATE_SYSTEM_PROMPT: updated_key(PRODUCT_STRATEGY),
    prompts.HYPOTHESIS_SYSTEM_PROMPT: HYPOTHESIS,
    prompts.RECOMMENDATIONS_SYSTEM_PROMPT: RECOMMENDATIONS,
}

RATE_LIMIT_MESSAGE = "Failed to generate response: Anthropic API rate limit exceeded. Retry after 60 seconds."

MALFORMED_TEXT = (
    "This idea looks promising. The team should talk to customers first "
    "and decide on the platform later."
)


@dataclass
class FakeCall:
    role: str
    prompt: str
    system_instructions: str | None
    max_output_tokens: int


class ProviderFake:
    """Scenario-based test double for the TextCompletionProvider protocol."""

    VALID_SCENARIOS = {"happy_path", "llm_failure", "research_failure", "synthesis_failure", "malformed_json"}

    def __init__(
        self,
        scenario: str = "happy_path",
        overrides: dict[str, str | Exception] | None = None,
        hold: asyncio.Event | None = None,
    ):
        """Initialize ProviderFake with a named scenario.

        Args:
            scenario: One of VALID_SCENARIOS
            overrides: Role key -> raw completion text replacing the canned response,
                or an exception to raise for that role
            hold: Event every call waits on before answering

        Raises:
            ValueError: If scenario is not recognized
        """
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(
                f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}"
            )
        self.scenario = scenario
        self.overrides = overrides or {}
        self.hold = hold
        self.calls: list[FakeCall] = []

    def calls_for(self, role: str) -> list[FakeCall]:
        return [call for call in self.calls if call.role == role]

    async def generate(
        self,
        prompt: str,
        system_instructions: str | None = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ) -> str:
        role = SYSTEM_PROMPT_ROLES.get(system_instructions or "")
        if role is None:
            raise ValueError(f"Unrecognized system prompt: {system_instructions!r}")

        self.calls.append(FakeCall(role, prompt, system_instructions, max_output_tokens))

        if self.hold is not None:
            await self.hold.wait()
        else:
            await asyncio.sleep(0)

        if self._should_fail(role):
            raise ProviderError(RATE_LIMIT_MESSAGE)

        if role in self.overrides:
            override = self.overrides[role]
            if isinstance(override, Exception):
                raise override
            return override

        if self.scenario == "malformed_json":
            return MALFORMED_TEXT

        return CANNED_RESPONSES[role]

    def _should_fail(self, role: str) -> bool:
        if self.scenario == "llm_failure":
            return True
        if self.scenario == "research_failure":
            return role.endswith("_updated")
        if self.scenario == "synthesis_failure":
            return role == HYPOTHESIS
        return False


# ---------------------------------------------------------------------------
# Canned happy-path content
# ---------------------------------------------------------------------------

FACILITATOR_RESPONSE = {
    "readiness_assessment": "Ready for a sprint: the problem is concrete and the audience is reachable.",
    "key_questions": [
        "Which shop owners feel the stock-out pain weekly?",
        "What do they pay for inventory tools today?",
    ],
    "focus_areas": ["Customer segment", "Differentiation"],
    "process_recommendations": ["Timebox the decision round to one session"],
    "research_priorities": [
        "How often do independent retailers run out of best sellers?",
        "Which inventory tools do they already pay for?",
        "How do owners reorder stock today?",
    ],
}

CUSTOMER_RESEARCH_RESPONSE = {
    "target_customers": {
        "primary_segment": "Independent retail shops with 1-3 locations",
        "characteristics": ["Owner-operated", "Price sensitive"],
        "pain_points": ["Stock-outs on best sellers", "Manual spreadsheets"],
        "current_solutions": "Spreadsheets and supplier phone calls",
    },
    "market_opportunity": {
        "market_size": "Roughly 1M independent retailers in the US",
        "growth_trends": "POS adoption is rising among small shops",
        "timing_assessment": "Ready",
    },
    "customer_validation": {
        "research_questions": [
            "Would owners pay $49/month to avoid stock-outs?",
            "Who in the shop places reorders?",
            "How much time does reordering take each week?",
        ],
        "validation_methods": ["Customer interviews", "Landing page test"],
        "success_metrics": ["Interview-to-waitlist conversion"],
    },
    "adoption_insights": {
        "adoption_barriers": ["Setup time"],
        "motivation_factors": ["Fewer lost sales"],
        "decision_criteria": ["Price", "POS integration"],
    },
}

PRODUCT_STRATEGY_RESPONSE = {
    "technical_feasibility": {
        "complexity_level": "medium",
        "key_challenges": ["POS integrations"],
        "technology_requirements": ["Web backend", "POS APIs"],
        "development_timeline": "3 months",
    },
    "implementation_approaches": [
        {
            "approach": "Web app with CSV import",
            "pros": ["Fast to ship"],
            "cons": ["Manual data entry"],
            "timeline": "6 weeks",
            "resources_needed": ["1 full-stack engineer"],
        }
    ],
    "strategic_positioning": {
        "differentiation_opportunities": ["Reorder suggestions"],
        "competitive_advantages": ["Simplicity"],
        "market_positioning": "The inventory tool for shops without an ops team",
    },
    "resource_planning": {
        "team_requirements": ["Full-stack engineer", "Designer"],
        "budget_considerations": ["POS partner fees"],
        "timeline_milestones": ["MVP in 6 weeks"],
    },
    "research_priorities": [
        "Which POS systems dominate the segment?",
        "What do competitors charge?",
        "Do suppliers expose ordering APIs?",
        "Is offline mode required?",
    ],
}


def _updated_response(agent: str) -> dict:
    return {
        "key_findings": [f"Research confirms the {agent} analysis on stock-out frequency"],
        "key_recommendations": ["Lead with reorder suggestions"],
        "research_impact": "Narrowed the primary segment to single-location shops",
    }


HYPOTHESIS_RESPONSE = {
    "founding_hypothesis": (
        "If we solve stock-outs for independent retailers with a simple web app, "
        "we think they're going to choose it over spreadsheets because of reorder "
        "suggestions and a 10-minute setup."
    ),
    "components": {
        "customer": "Independent retailers",
        "problem": "Stock-outs on best sellers",
        "approach": "Web app",
        "alternatives": "Spreadsheets",
        "differentiator_1": "Reorder suggestions",
        "differentiator_2": "10-minute setup",
    },
    "confidence_level": "medium",
    "key_assumptions": ["Owners will connect their POS"],
    "next_steps": ["Run 10 customer interviews"],
}

RECOMMENDATIONS_RESPONSE = {
    "immediate_actions": ["Interview 10 shop owners"],
    "validation_experiments": ["Landing page with pricing"],
    "development_priorities": ["CSV import", "Reorder suggestions"],
    "research_gaps": ["Supplier API availability"],
}

CANNED_RESPONSES: dict[str, str] = {
    # Fenced with a lead-in, the way chat models often answer
    FACILITATOR: "Here is my analysis:\n```json\n" + json.dumps(FACILITATOR_RESPONSE, indent=2) + "\n```",
    CUSTOMER_RESEARCH: json.dumps(CUSTOMER_RESEARCH_RESPONSE),
    PRODUCT_STRATEGY: json.dumps(PRODUCT_STRATEGY_RESPONSE),
    updated_key(FACILITATOR): json.dumps(_updated_response(FACILITATOR)),
    updated_key(CUSTOMER_RESEARCH): json.dumps(_updated_response(CUSTOMER_RESEARCH)),
    updated_key(PRODUCT_STRATEGY): json.dumps(_updated_response(PRODUCT_STRATEGY)),
    HYPOTHESIS: json.dumps(HYPOTHESIS_RESPONSE),
    RECOMMENDATIONS: json.dumps(RECOMMENDATIONS_RESPONSE),
}
