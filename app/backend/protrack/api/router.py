"""Top-level API router."""

from fastapi import APIRouter

from protrack.api.routes.contributions import router as contributions_router
from protrack.api.routes.dashboard import router as dashboard_router
from protrack.api.routes.exports import router as exports_router
from protrack.api.routes.health import router as health_router
from protrack.api.routes.projects import router as projects_router
from protrack.api.routes.tasks import router as tasks_router
from protrack.api.routes.users import router as users_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
# Registered ahead of the tasks router so /tasks/export is not taken for /tasks/{task_id}.
api_router.include_router(exports_router)
api_router.include_router(tasks_router)
api_router.include_router(contributions_router)
api_router.include_router(projects_router)
api_router.include_router(users_router)
api_router.include_router(dashboard_router)
