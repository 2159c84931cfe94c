"""Foundation Sprint: FastAPI application entry point."""

import uuid
from contextlib import asynccontextmanager

# configure_structlog MUST be called before all other package imports
# (structlog caches the processor chain on first use).
from foundation_sprint.core.config import get_settings as _get_settings_early
from foundation_sprint.core.logging import configure_structlog

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from foundation_sprint import __version__
from foundation_sprint.agent.provider_anthropic import AnthropicProvider
from foundation_sprint.api.routes import api_router
from foundation_sprint.core.config import Settings, get_settings
from foundation_sprint.core.exceptions import FoundationSprintError
from foundation_sprint.middleware.correlation import (
    REQUEST_ID_HEADER,
    get_correlation_id,
    setup_correlation_middleware,
)
from foundation_sprint.services.sprint_orchestrator import SprintOrchestrator
from foundation_sprint.services.sprint_store import InMemorySprintStore

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Flipped at shutdown so /api/health returns 503 while connections drain
    app.state.shutting_down = False

    settings: Settings = app.state.settings
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    owned_provider = None
    if app.state.orchestrator is None:
        settings.validate_required()
        owned_provider = AnthropicProvider.from_settings(settings)
        app.state.orchestrator = SprintOrchestrator(
            owned_provider,
            InMemorySprintStore(),
            max_output_tokens=settings.llm_max_output_tokens,
        )
        logger.info("orchestrator_initialized", model=settings.sprint_model)

    yield

    # Shutdown
    app.state.shutting_down = True
    logger.info("shutdown_begin")
    await app.state.orchestrator.shutdown()
    if owned_provider is not None:
        await owned_provider.aclose()
    logger.info("shutdown_complete")


def _error_response(request: Request, status_code: int, message: str, event: str, **context) -> JSONResponse:
    """Log the failure with a fresh debug_id and return the sanitized error body."""
    debug_id = str(uuid.uuid4())
    log = logger.error if status_code >= 500 else logger.warning
    log(
        event,
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        **context,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "debug_id": debug_id},
    )


async def sprint_error_handler(request: Request, exc: FoundationSprintError) -> JSONResponse:
    """Map domain errors to their status code (400/404/409/502)."""
    return _error_response(
        request,
        exc.status_code,
        str(exc),
        "sprint_error",
        error_type=type(exc).__name__,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors: 400, not FastAPI's default 422."""
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return _error_response(
        request,
        400,
        f"Invalid request: {details}",
        "request_validation_failed",
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking."""
    return _error_response(
        request,
        exc.status_code,
        str(exc.detail),
        "http_exception",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors: full traceback in the log, generic 500 to the client."""
    return _error_response(
        request,
        500,
        "Internal server error",
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )


def create_app(
    settings: Settings | None = None,
    orchestrator: SprintOrchestrator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Defaults to get_settings()
        orchestrator: Pre-built orchestrator (tests); when None the lifespan
            builds one backed by Anthropic and an in-memory store
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Foundation Sprint orchestration: from product idea to founding hypothesis",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.shutting_down = False

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    # Exception handlers
    app.exception_handler(FoundationSprintError)(sprint_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    # Include API routes
    app.include_router(api_router, prefix="/api")

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "foundation_sprint.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
