"""Task listing and lifecycle endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from protrack.api.query_params import raw_filter_params
from protrack.core.config import get_settings
from protrack.db.dependencies import get_db_session
from protrack.models.entities import TaskCategory, TaskPriority, TaskStatus
from protrack.services.task_filters import build_task_predicates
from protrack.services.task_query_service import TaskQueryService, TaskWriteData

router = APIRouter(prefix="/tasks", tags=["tasks"])


class TaskPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=1, max_length=500)
    issue_link: str | None = Field(default=None, max_length=2048)
    project_id: int
    assigned_to_id: int | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.OP
    start_date: datetime | None = None
    end_date: datetime | None = None
    contribution_score: Decimal = Field(default=Decimal("0"), ge=-10, le=10)

    @field_validator("start_date", "end_date")
    @classmethod
    def to_naive_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def to_data(self) -> TaskWriteData:
        return TaskWriteData(
            title=self.title,
            issue_link=self.issue_link,
            project_id=self.project_id,
            assigned_to_id=self.assigned_to_id,
            status=self.status,
            priority=self.priority,
            category=self.category,
            start_date=self.start_date,
            end_date=self.end_date,
            contribution_score=self.contribution_score,
        )


def _service(db: Session) -> TaskQueryService:
    return TaskQueryService(db)


@router.get("")
def list_tasks(
    request: Request,
    page: int = Query(default=1),
    limit: int | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    predicates = build_task_predicates(raw_filter_params(request))
    page_size = limit if limit is not None else get_settings().default_page_size
    return _service(db).list_tasks(predicates, page=page, limit=page_size)


@router.get("/stats")
def task_stats(db: Session = Depends(get_db_session)) -> dict[str, int]:
    return _service(db).task_stats()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    task = service.create_task(payload.to_data())
    return service.serialize_task(task)


@router.get("/{task_id}")
def get_task(task_id: int, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    return service.serialize_task(service.get_task(task_id))


@router.put("/{task_id}")
def update_task(task_id: int, payload: TaskPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    task = service.update_task(task_id, payload.to_data())
    return service.serialize_task(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(task_id: int, db: Session = Depends(get_db_session)) -> Response:
    _service(db).delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
