"""Pydantic schemas for the sprint workflow and its HTTP surface.

Defines schemas for:
- Product idea input (camelCase on the wire)
- Strategic decisions with the implementation approach enum
- Research requests derived from agent insights
- API request/response schemas for the five sprint endpoints
"""

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

# Fewer filled decisions than this cannot anchor a founding hypothesis
MIN_DECISIONS = 3


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def validation_message(exc: PydanticValidationError) -> str:
    """Flatten a pydantic ValidationError into one readable line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


# ==================== PRODUCT IDEA ====================


class ProductIdea(CamelModel):
    """The idea a sprint is run against.

    name and description are required and must be non-blank; the remaining
    fields are free text that prompts render as "Not specified" when absent.
    """

    name: str = Field(..., description="Product name")
    description: str = Field(..., description="What the product does")
    target_market: OptionalText = Field(None, description="Who the product is for")
    problem_statement: OptionalText = Field(None, description="Problem being solved")
    initial_solution: OptionalText = Field(None, description="First idea of the solution")

    @field_validator("name", "description", mode="before")
    @classmethod
    def _required_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("must not be blank")
        return value


# ==================== DECISIONS ====================


class ImplementationApproach(StrEnum):
    WEB_APP = "web_app"
    MOBILE_APP = "mobile_app"
    DESKTOP_APP = "desktop_app"
    API_PLATFORM = "api_platform"
    BROWSER_EXTENSION = "browser_extension"
    HYBRID = "hybrid"


class Decisions(BaseModel):
    """Strategic decisions collected from the user in the decision_making phase.

    Keys stay snake_case on the wire. Unknown keys are rejected; blank values
    count as not provided.
    """

    model_config = ConfigDict(extra="forbid")

    target_customer: OptionalText = None
    core_problem: OptionalText = None
    differentiation: OptionalText = None
    implementation_approach: Annotated[
        ImplementationApproach | None, BeforeValidator(_blank_to_none)
    ] = None
    gtm_strategy: OptionalText = None

    def merge(self, other: "Decisions") -> "Decisions":
        """Return a copy with other's provided values layered on top."""
        return self.model_copy(update=other.model_dump(exclude_none=True))

    @property
    def filled_count(self) -> int:
        return sum(1 for value in self.model_dump().values() if value is not None)


# ==================== RESEARCH ====================


class ResearchRequest(CamelModel):
    """One research prompt the user is asked to answer."""

    id: str = Field(..., description="<agent>_<index> or customer_validation_<index>")
    agent: str = Field(..., description="Agent key that raised the question")
    type: Literal["priority_research", "customer_validation"]
    question: str
    urgency: Literal["high"] = "high"
    guidance: str


# ==================== API REQUEST/RESPONSE SCHEMAS ====================


class StartSprintRequest(CamelModel):
    """Request to start a sprint.

    product_idea is validated by the orchestrator so a missing or blank field
    reports the same error whether it arrives over HTTP or from Python.
    """

    product_idea: Any = None


class StartSprintResponse(CamelModel):
    sprint_id: str
    status: Literal["initialized"] = "initialized"


class SprintStatusResponse(CamelModel):
    phase: str
    agent_progress: dict[str, dict[str, Any]]
    research_requests: list[ResearchRequest]
    status: str
    error: str | None = None


class SubmitResearchRequest(CamelModel):
    research_data: dict[str, str] = Field(..., description="Research request id -> finding")


class SubmitResearchResponse(CamelModel):
    status: Literal["research_submitted"] = "research_submitted"


class MakeDecisionsRequest(CamelModel):
    # Validated against Decisions by the orchestrator (merge happens first)
    decisions: dict[str, Any]


class MakeDecisionsResponse(CamelModel):
    hypothesis: dict[str, Any]
    status: Literal["completed"] = "completed"


class SprintResultsResponse(CamelModel):
    product_idea: ProductIdea
    founding_hypothesis: dict[str, Any] | None = None
    decisions: Decisions
    agent_insights: dict[str, dict[str, Any]]
    research_summary: dict[str, str]
    duration: int | None = Field(None, description="Milliseconds from start to completion")
    recommendations: dict[str, Any] | None = None
