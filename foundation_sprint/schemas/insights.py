"""Pydantic models for structured model output.

Agent insights, the founding hypothesis and recommendations are parsed from
semi-structured completions, so every field is optional and unknown keys are
kept as extras. Parsing never fails: near-miss values are coerced (a string
where a list is expected becomes a one-item list) and anything still
ill-typed is dropped field by field.
"""

import json
from typing import Annotated, Any, TypeVar

import structlog
from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic import ValidationError as PydanticValidationError

logger = structlog.get_logger(__name__)


def _as_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


def _as_text_list(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item if isinstance(item, str) else json.dumps(item) for item in value]
    return value


Text = Annotated[str | None, BeforeValidator(_as_text)]
TextList = Annotated[list[str] | None, BeforeValidator(_as_text_list)]


class ModelOutput(BaseModel):
    """Base for anything parsed out of a completion."""

    model_config = ConfigDict(extra="allow")

    # Fallback shape produced by extract_structured when no JSON was found
    response: Text = None
    reasoning: Text = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize for API responses and prompts (absent fields omitted)."""
        return self.model_dump(exclude_none=True)


OutputT = TypeVar("OutputT", bound=ModelOutput)


def parse_model_output(model: type[OutputT], data: dict[str, Any]) -> OutputT:
    """Validate data into model, dropping top-level fields that do not fit.

    Args:
        model: ModelOutput subclass to build
        data: Decoded JSON object (or the extract_structured fallback dict)

    Returns:
        Instance of model; never raises for ill-typed fields
    """
    payload = dict(data)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        bad_fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        logger.warning("model_output_fields_dropped", model=model.__name__, fields=bad_fields)
        for name in bad_fields:
            payload.pop(name, None)
        return model.model_validate(payload)


# ---------------------------------------------------------------------------
# Nested sections
# ---------------------------------------------------------------------------


class CustomerValidation(ModelOutput):
    research_questions: TextList = None
    validation_methods: TextList = None
    success_metrics: TextList = None


class TargetCustomers(ModelOutput):
    primary_segment: Text = None
    characteristics: TextList = None
    pain_points: TextList = None
    current_solutions: Text = None


class MarketOpportunity(ModelOutput):
    market_size: Text = None
    growth_trends: Text = None
    timing_assessment: Text = None


class AdoptionInsights(ModelOutput):
    adoption_barriers: TextList = None
    motivation_factors: TextList = None
    decision_criteria: TextList = None


class TechnicalFeasibility(ModelOutput):
    complexity_level: Text = None
    key_challenges: TextList = None
    technology_requirements: TextList = None
    development_timeline: Text = None


class ImplementationOption(ModelOutput):
    approach: Text = None
    pros: TextList = None
    cons: TextList = None
    timeline: Text = None
    resources_needed: TextList = None


class StrategicPositioning(ModelOutput):
    differentiation_opportunities: TextList = None
    competitive_advantages: TextList = None
    market_positioning: Text = None


class ResourcePlanning(ModelOutput):
    team_requirements: TextList = None
    budget_considerations: TextList = None
    timeline_milestones: TextList = None


# ---------------------------------------------------------------------------
# Agent insights
# ---------------------------------------------------------------------------


class AgentInsight(ModelOutput):
    """Fields any agent may emit.

    research_priorities and customer_validation feed the research request
    extractor regardless of which agent produced them. The key_* fields are
    filled by the research-informed second round.
    """

    research_priorities: TextList = None
    customer_validation: CustomerValidation | None = None
    key_findings: TextList = None
    key_recommendations: TextList = None
    research_impact: Text = None


class FacilitatorInsight(AgentInsight):
    readiness_assessment: Text = None
    key_questions: TextList = None
    focus_areas: TextList = None
    process_recommendations: TextList = None


class CustomerResearchInsight(AgentInsight):
    target_customers: TargetCustomers | None = None
    market_opportunity: MarketOpportunity | None = None
    adoption_insights: AdoptionInsights | None = None


class ProductStrategyInsight(AgentInsight):
    technical_feasibility: TechnicalFeasibility | None = None
    implementation_approaches: list[ImplementationOption] | None = None
    strategic_positioning: StrategicPositioning | None = None
    resource_planning: ResourcePlanning | None = None


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


class HypothesisComponents(ModelOutput):
    customer: Text = None
    problem: Text = None
    approach: Text = None
    alternatives: Text = None
    differentiator_1: Text = None
    differentiator_2: Text = None


class FoundingHypothesis(ModelOutput):
    """Synthesized 'If we solve [problem] for [customer]...' statement."""

    founding_hypothesis: Text = None
    components: HypothesisComponents | None = None
    confidence_level: Text = None
    key_assumptions: TextList = None
    next_steps: TextList = None


class Recommendations(ModelOutput):
    immediate_actions: TextList = None
    validation_experiments: TextList = None
    development_priorities: TextList = None
    research_gaps: TextList = None
