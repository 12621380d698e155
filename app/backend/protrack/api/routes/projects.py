"""Project administration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from protrack.db.dependencies import get_db_session
from protrack.services.catalog_service import CatalogService, ProjectWriteData

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    logo: str | None = Field(default=None, max_length=2048)
    difficulty_multiplier: float = Field(default=1.0, ge=0.1, le=5.0)

    def to_data(self) -> ProjectWriteData:
        return ProjectWriteData(
            title=self.title,
            description=self.description,
            logo=self.logo,
            difficulty_multiplier=self.difficulty_multiplier,
        )


def _service(db: Session) -> CatalogService:
    return CatalogService(db)


@router.get("")
def list_projects(db: Session = Depends(get_db_session)) -> list[dict[str, object]]:
    service = _service(db)
    return [service.serialize_project(project) for project in service.list_projects()]


@router.get("/stats")
def project_stats(db: Session = Depends(get_db_session)) -> dict[str, int]:
    return _service(db).project_stats()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(payload: ProjectPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    return service.serialize_project(service.create_project(payload.to_data()))


@router.get("/{project_id}")
def get_project(project_id: int, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    return service.serialize_project(service.get_project(project_id))


@router.put("/{project_id}")
def update_project(
    project_id: int,
    payload: ProjectPayload,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_project(service.update_project(project_id, payload.to_data()))


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: int, db: Session = Depends(get_db_session)) -> Response:
    _service(db).delete_project(project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
