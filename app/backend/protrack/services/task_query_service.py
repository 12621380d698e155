"""Task listing and lifecycle service."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from protrack.models.entities import Task, TaskCategory, TaskPriority, TaskStatus
from protrack.repositories.tracking_repository import TrackingRepository
from protrack.services.task_filters import TaskPredicate

logger = logging.getLogger(__name__)

MIN_CONTRIBUTION_SCORE = Decimal("-10")
MAX_CONTRIBUTION_SCORE = Decimal("10")
Q2 = Decimal("0.01")


@dataclass(slots=True)
class TaskWriteData:
    title: str
    project_id: int
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.OP
    issue_link: str | None = None
    assigned_to_id: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    contribution_score: Decimal = Decimal("0")


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class TaskQueryService:
    """Filtered, paginated reads plus create/update/soft-delete of tasks."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackingRepository(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_task(task: Task) -> dict[str, object]:
        return {
            "id": task.id,
            "title": task.title,
            "issueLink": task.issue_link,
            "projectId": task.project_id,
            "assignedToId": task.assigned_to_id,
            "status": task.status.value,
            "priority": task.priority.value,
            "category": task.category.value,
            "startDate": _isoformat(task.start_date),
            "endDate": _isoformat(task.end_date),
            "contributionScore": str(task.contribution_score),
            "active": task.active,
            "createdAt": _isoformat(task.created_at),
            "updatedAt": _isoformat(task.updated_at),
        }

    # ---------- Listing ----------
    def list_tasks(self, predicates: Sequence[TaskPredicate], *, page: int, limit: int) -> dict[str, object]:
        if limit <= 0:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="limit must be greater than zero.",
            )
        if page < 1:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="page must be greater than or equal to 1.",
            )

        total = self.repo.count_tasks(predicates)
        total_pages = math.ceil(total / limit)
        if page > total_pages:
            rows: list[Task] = []
        else:
            rows = self.repo.list_tasks_page(predicates, limit=limit, offset=(page - 1) * limit)

        logger.debug("Listed %d of %d tasks (page %d, limit %d)", len(rows), total, page, limit)
        return {
            "tasks": [self.serialize_task(task) for task in rows],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": total_pages,
            },
        }

    def task_stats(self) -> dict[str, int]:
        stats = self.repo.task_stats()
        return {
            "activeTasks": stats["active_tasks"],
            "completedTasks": stats["completed_tasks"],
            "totalTasks": stats["total_tasks"],
        }

    # ---------- Lifecycle ----------
    def _get_active_task(self, task_id: int) -> Task:
        task = self.repo.get_task(task_id)
        if task is None or not task.active:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found.")
        return task

    def _validate(self, data: TaskWriteData) -> None:
        if not MIN_CONTRIBUTION_SCORE <= data.contribution_score <= MAX_CONTRIBUTION_SCORE:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="contributionScore must be between -10 and 10.",
            )
        if data.start_date is not None and data.end_date is not None and data.end_date < data.start_date:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="endDate must be greater than or equal to startDate.",
            )
        if self.repo.get_project(data.project_id) is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"projectId {data.project_id} does not reference an existing project.",
            )
        if data.assigned_to_id is not None and self.repo.get_user(data.assigned_to_id) is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"assignedToId {data.assigned_to_id} does not reference an existing user.",
            )

    @staticmethod
    def _apply(task: Task, data: TaskWriteData) -> None:
        task.title = data.title.strip()
        task.issue_link = data.issue_link.strip() if data.issue_link else None
        task.project_id = data.project_id
        task.assigned_to_id = data.assigned_to_id
        task.status = data.status
        task.priority = data.priority
        task.category = data.category
        task.start_date = data.start_date
        task.end_date = data.end_date
        task.contribution_score = data.contribution_score.quantize(Q2)

    def _commit(self, task: Task) -> Task:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Task violates a referential constraint.",
            ) from exc
        self.db.refresh(task)
        return task

    def get_task(self, task_id: int) -> Task:
        return self._get_active_task(task_id)

    def create_task(self, data: TaskWriteData) -> Task:
        self._validate(data)
        now = datetime.utcnow()
        task = Task(active=True, created_at=now, updated_at=now)
        self._apply(task, data)
        self.repo.add_task(task)
        return self._commit(task)

    def update_task(self, task_id: int, data: TaskWriteData) -> Task:
        task = self._get_active_task(task_id)
        self._validate(data)
        self._apply(task, data)
        task.updated_at = datetime.utcnow()
        return self._commit(task)

    def delete_task(self, task_id: int) -> None:
        task = self._get_active_task(task_id)
        task.active = False
        task.updated_at = datetime.utcnow()
        self.db.commit()
