"""Sprint API routes: 5 endpoints for the sprint lifecycle.

Domain errors (FoundationSprintError subclasses) are not caught here; the
global handlers in main.py map them to 400/404/409/502.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from foundation_sprint.schemas.sprint import (
    MakeDecisionsRequest,
    MakeDecisionsResponse,
    SprintResultsResponse,
    SprintStatusResponse,
    StartSprintRequest,
    StartSprintResponse,
    SubmitResearchRequest,
    SubmitResearchResponse,
)
from foundation_sprint.services.sprint_orchestrator import SprintOrchestrator

router = APIRouter()


def get_orchestrator(request: Request) -> SprintOrchestrator:
    """Dependency that provides the application's SprintOrchestrator.

    Set on app.state by the lifespan (or by create_app in tests).
    Override this dependency in tests via app.dependency_overrides.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Sprint service is not ready")
    return orchestrator


@router.post("/start", response_model=StartSprintResponse)
async def start_sprint(
    body: StartSprintRequest,
    orchestrator: SprintOrchestrator = Depends(get_orchestrator),
):
    """Create a sprint; agent analysis starts in the background.

    Raises:
        ValidationError(400): productIdea missing, or name/description blank
    """
    sprint_id = await orchestrator.initialize_sprint(body.product_idea)
    return StartSprintResponse(sprint_id=sprint_id)


@router.get(
    "/{sprint_id}/status",
    response_model=SprintStatusResponse,
    response_model_exclude_none=True,
)
async def get_sprint_status(
    sprint_id: str,
    orchestrator: SprintOrchestrator = Depends(get_orchestrator),
):
    """Poll phase, agent progress and research requests."""
    return SprintStatusResponse(**await orchestrator.get_sprint_status(sprint_id))


@router.post("/{sprint_id}/research", response_model=SubmitResearchResponse)
async def submit_research(
    sprint_id: str,
    body: SubmitResearchRequest,
    orchestrator: SprintOrchestrator = Depends(get_orchestrator),
):
    """Merge research findings; starts the research round when the sprint awaits it."""
    await orchestrator.submit_research(sprint_id, body.research_data)
    return SubmitResearchResponse()


@router.post("/{sprint_id}/decisions", response_model=MakeDecisionsResponse)
async def make_decisions(
    sprint_id: str,
    body: MakeDecisionsRequest,
    orchestrator: SprintOrchestrator = Depends(get_orchestrator),
):
    """Record decisions and return the founding hypothesis.

    Raises:
        ConflictError(409): Sprint not in decision_making, or already completed/failed
        ValidationError(400): Unknown keys, bad implementation_approach, too few decisions
        ProviderError(502): Hypothesis synthesis failed
    """
    hypothesis = await orchestrator.make_decisions(sprint_id, body.decisions)
    return MakeDecisionsResponse(hypothesis=hypothesis.to_payload())


@router.get("/{sprint_id}/results", response_model=SprintResultsResponse)
async def get_results(
    sprint_id: str,
    orchestrator: SprintOrchestrator = Depends(get_orchestrator),
):
    """Return the sprint outcome; recommendations are generated once after completion."""
    return SprintResultsResponse(**await orchestrator.get_results(sprint_id))
