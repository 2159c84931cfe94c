"""Prompt templates for the sprint agents and synthesizers.

System prompts are fixed per role. User prompts label the product idea's
fields one per line; optional fields that are missing render as
NOT_SPECIFIED so the model sees every label.
"""

import json
from typing import Any

from foundation_sprint.schemas.sprint import ProductIdea

NOT_SPECIFIED = "Not specified"

# ---------------------------------------------------------------------------
# Facilitator
# ---------------------------------------------------------------------------

FACILITATOR_SYSTEM_PROMPT = """You are an expert Foundation Sprint facilitator. Analyze the product idea and provide structured guidance for the sprint process.

Your role is to:
1. Assess the product idea's readiness for Foundation Sprint
2. Identify key questions that need to be answered
3. Suggest areas requiring additional research
4. Provide process guidance

Always respond in JSON format."""

FACILITATOR_JSON_SHAPE = """{
  "readiness_assessment": "assessment of sprint readiness",
  "key_questions": ["critical questions to answer"],
  "focus_areas": ["areas to emphasize in sprint"],
  "process_recommendations": ["specific guidance for this product"],
  "research_priorities": ["what research is most critical"]
}"""

# ---------------------------------------------------------------------------
# Customer research
# ---------------------------------------------------------------------------

CUSTOMER_RESEARCH_SYSTEM_PROMPT = """You are a customer research expert. Analyze the product idea from a customer and market perspective.

Focus on:
1. Customer segmentation and personas
2. Market opportunity assessment
3. Customer pain points and needs
4. Adoption patterns and behavior
5. Market validation requirements

Always respond in JSON format."""

CUSTOMER_RESEARCH_JSON_SHAPE = """{
  "target_customers": {
    "primary_segment": "description of primary customers",
    "characteristics": ["key customer traits"],
    "pain_points": ["specific customer problems"],
    "current_solutions": "how they solve this today"
  },
  "market_opportunity": {
    "market_size": "estimated market size",
    "growth_trends": "relevant market trends",
    "timing_assessment": "is the market ready?"
  },
  "customer_validation": {
    "research_questions": ["key questions to validate"],
    "validation_methods": ["recommended research approaches"],
    "success_metrics": ["what to measure"]
  },
  "adoption_insights": {
    "adoption_barriers": ["potential barriers"],
    "motivation_factors": ["what would drive adoption"],
    "decision_criteria": ["how customers would evaluate this"]
  }
}"""

# ---------------------------------------------------------------------------
# Product strategy
# ---------------------------------------------------------------------------

PRODUCT_STRATEGY_SYSTEM_PROMPT = """You are a product strategy and technical feasibility expert. Analyze the product idea from implementation and strategic perspectives.

Focus on:
1. Technical feasibility and complexity
2. Implementation approaches and timelines
3. Resource requirements
4. Strategic positioning
5. Competitive considerations

Always respond in JSON format."""

PRODUCT_STRATEGY_JSON_SHAPE = """{
  "technical_feasibility": {
    "complexity_level": "low/medium/high",
    "key_challenges": ["main technical hurdles"],
    "technology_requirements": ["required technologies"],
    "development_timeline": "estimated development time"
  },
  "implementation_approaches": [
    {
      "approach": "implementation option",
      "pros": ["advantages"],
      "cons": ["disadvantages"],
      "timeline": "estimated timeline",
      "resources_needed": ["required resources"]
    }
  ],
  "strategic_positioning": {
    "differentiation_opportunities": ["ways to differentiate"],
    "competitive_advantages": ["potential advantages"],
    "market_positioning": "suggested market position"
  },
  "resource_planning": {
    "team_requirements": ["key roles needed"],
    "budget_considerations": ["major cost factors"],
    "timeline_milestones": ["key development milestones"]
  }
}"""

# ---------------------------------------------------------------------------
# Research-informed update round
# ---------------------------------------------------------------------------

FACILITATOR_UPDATE_SYSTEM_PROMPT = (
    "You are a Foundation Sprint facilitator. Update your analysis based on new research data."
)
CUSTOMER_RESEARCH_UPDATE_SYSTEM_PROMPT = (
    "You are a customer research expert. Refine your insights based on research findings."
)
PRODUCT_STRATEGY_UPDATE_SYSTEM_PROMPT = (
    "You are a product strategy expert. Update your recommendations based on research data."
)

UPDATE_JSON_SHAPE = """{
  "key_findings": ["what the research revealed"],
  "key_recommendations": ["what to do differently because of it"],
  "research_impact": "how the research changes the previous analysis"
}"""

# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

HYPOTHESIS_SYSTEM_PROMPT = """You are an expert at synthesizing Foundation Sprint results into a clear founding hypothesis.

The Foundation Sprint hypothesis format is:
"If we solve [problem] for [customer] with [approach], we think they're going to choose it over [alternatives] because of [differentiator] and [unique advantage]."

Synthesize all the analysis and decisions into a clear, testable hypothesis."""

HYPOTHESIS_JSON_SHAPE = """{
  "founding_hypothesis": "complete hypothesis statement",
  "components": {
    "customer": "target customer",
    "problem": "problem being solved",
    "approach": "solution approach",
    "alternatives": "main competitors/alternatives",
    "differentiator_1": "primary differentiator",
    "differentiator_2": "secondary differentiator"
  },
  "confidence_level": "high/medium/low",
  "key_assumptions": ["critical assumptions to test"],
  "next_steps": ["recommended validation steps"]
}"""

RECOMMENDATIONS_SYSTEM_PROMPT = "Generate actionable next steps based on the Foundation Sprint results."

RECOMMENDATIONS_JSON_SHAPE = """{
  "immediate_actions": ["actions for next 1-2 weeks"],
  "validation_experiments": ["ways to test the hypothesis"],
  "development_priorities": ["what to build first"],
  "research_gaps": ["additional research needed"]
}"""


def _field(value: str | None) -> str:
    return value or NOT_SPECIFIED


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def build_facilitator_prompt(idea: ProductIdea) -> str:
    return (
        "Analyze this product idea for Foundation Sprint:\n\n"
        f"Product: {idea.name}\n"
        f"Description: {idea.description}\n"
        f"Target Market: {_field(idea.target_market)}\n"
        f"Problem: {_field(idea.problem_statement)}\n\n"
        f"Provide analysis in this JSON format:\n{FACILITATOR_JSON_SHAPE}"
    )


def build_customer_research_prompt(idea: ProductIdea) -> str:
    return (
        "Analyze this product from a customer research perspective:\n\n"
        f"Product: {idea.name}\n"
        f"Description: {idea.description}\n"
        f"Target Market: {_field(idea.target_market)}\n\n"
        f"Provide analysis in this JSON format:\n{CUSTOMER_RESEARCH_JSON_SHAPE}"
    )


def build_product_strategy_prompt(idea: ProductIdea) -> str:
    return (
        "Analyze this product from a strategy and implementation perspective:\n\n"
        f"Product: {idea.name}\n"
        f"Description: {idea.description}\n"
        f"Initial Solution: {_field(idea.initial_solution)}\n\n"
        f"Provide analysis in this JSON format:\n{PRODUCT_STRATEGY_JSON_SHAPE}"
    )


def build_update_prompt(idea: ProductIdea, research_context: str) -> str:
    """Prompt for the research-informed round, shared by all three roles."""
    product = {
        "name": idea.name,
        "description": idea.description,
        "targetMarket": _field(idea.target_market),
        "problemStatement": _field(idea.problem_statement),
        "initialSolution": _field(idea.initial_solution),
    }
    return (
        "Based on this research data, update your analysis:\n\n"
        f"RESEARCH FINDINGS:\n{research_context}\n\n"
        f"ORIGINAL PRODUCT IDEA:\n{_to_json(product)}\n\n"
        "Provide updated insights in JSON format focusing on how the research "
        f"changes your previous analysis, for example:\n{UPDATE_JSON_SHAPE}"
    )


def build_hypothesis_prompt(context: dict[str, Any]) -> str:
    return (
        "Generate a founding hypothesis based on this Foundation Sprint analysis:\n\n"
        f"{_to_json(context)}\n\n"
        f"Respond in JSON format:\n{HYPOTHESIS_JSON_SHAPE}"
    )


def build_recommendations_prompt(context: dict[str, Any]) -> str:
    return (
        "Based on this Foundation Sprint, what should the team do next?\n\n"
        f"Context: {_to_json(context)}\n\n"
        "Provide 5-7 specific, actionable next steps in JSON format:\n"
        f"{RECOMMENDATIONS_JSON_SHAPE}"
    )
