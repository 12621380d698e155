"""User administration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from protrack.db.dependencies import get_db_session
from protrack.models.entities import UserRole
from protrack.services.catalog_service import CatalogService, UserWriteData

router = APIRouter(prefix="/users", tags=["users"])


class UserPayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    role: UserRole
    active: bool | None = None

    def to_data(self) -> UserWriteData:
        return UserWriteData(name=self.name, role=self.role, active=self.active)


def _service(db: Session) -> CatalogService:
    return CatalogService(db)


@router.get("")
def list_users(
    include_inactive: bool = Query(default=False, alias="includeInactive"),
    db: Session = Depends(get_db_session),
) -> list[dict[str, object]]:
    service = _service(db)
    return [service.serialize_user(user) for user in service.list_users(include_inactive=include_inactive)]


@router.get("/stats")
def user_stats(db: Session = Depends(get_db_session)) -> dict[str, int]:
    return _service(db).user_stats()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(payload: UserPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    return service.serialize_user(service.create_user(payload.to_data()))


@router.get("/{user_id}")
def get_user(user_id: int, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    return service.serialize_user(service.get_user(user_id))


@router.put("/{user_id}")
def update_user(user_id: int, payload: UserPayload, db: Session = Depends(get_db_session)) -> dict[str, object]:
    service = _service(db)
    return service.serialize_user(service.update_user(user_id, payload.to_data()))


@router.delete("/{user_id}")
def deactivate_user(user_id: int, db: Session = Depends(get_db_session)) -> dict[str, str]:
    _service(db).deactivate_user(user_id)
    return {"message": "User deactivated successfully"}
