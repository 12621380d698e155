"""Dashboard summary endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from protrack.db.dependencies import get_db_session
from protrack.services.catalog_service import CatalogService
from protrack.services.task_query_service import TaskQueryService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats")
def dashboard_stats(db: Session = Depends(get_db_session)) -> dict[str, int]:
    catalog = CatalogService(db)
    task_stats = TaskQueryService(db).task_stats()
    return {
        **catalog.project_stats(),
        "activeTasks": task_stats["activeTasks"],
        "completedTasks": task_stats["completedTasks"],
        **catalog.user_stats(),
    }
