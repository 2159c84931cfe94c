from fastapi import APIRouter

from foundation_sprint.api.routes import health, sprint

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(sprint.router, prefix="/sprint", tags=["sprint"])
