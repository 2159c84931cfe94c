import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)

router = APIRouter()

SERVICE_NAME = "foundation-sprint"


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for load balancer.

    Returns 503 during graceful shutdown so the balancer stops routing traffic.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": SERVICE_NAME},
        )
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness check - verifies the orchestrator is wired up."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    checks = {"orchestrator": orchestrator is not None}

    if not checks["orchestrator"]:
        logger.warning("readiness_check_failed", checks=checks)

    all_ready = all(checks.values())
    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "status": "ready" if all_ready else "degraded",
            "checks": checks,
            "active_tasks": orchestrator.active_tasks if orchestrator else 0,
        },
    )
