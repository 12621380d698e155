"""User and project administration plus dashboard counters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from protrack.models.entities import Project, User, UserRole
from protrack.repositories.tracking_repository import TrackingRepository

logger = logging.getLogger(__name__)

MIN_DIFFICULTY = 0.1
MAX_DIFFICULTY = 5.0


@dataclass(slots=True)
class UserWriteData:
    name: str
    role: UserRole
    active: bool | None = None


@dataclass(slots=True)
class ProjectWriteData:
    title: str
    description: str | None
    difficulty_multiplier: float
    logo: str | None = None


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class CatalogService:
    """Lifecycle of users (soft delete) and projects (guarded hard delete)."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackingRepository(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_user(user: User) -> dict[str, object]:
        return {
            "id": user.id,
            "name": user.name,
            "role": user.role.value,
            "active": user.active,
            "createdAt": _isoformat(user.created_at),
            "updatedAt": _isoformat(user.updated_at),
        }

    @staticmethod
    def serialize_project(project: Project) -> dict[str, object]:
        return {
            "id": project.id,
            "title": project.title,
            "description": project.description,
            "logo": project.logo,
            "difficultyMultiplier": project.difficulty_multiplier,
            "createdAt": _isoformat(project.created_at),
            "updatedAt": _isoformat(project.updated_at),
        }

    # ---------- Users ----------
    def list_users(self, *, include_inactive: bool = False) -> list[User]:
        return self.repo.list_users(include_inactive=include_inactive)

    def get_user(self, user_id: int) -> User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
        return user

    def create_user(self, data: UserWriteData) -> User:
        now = datetime.utcnow()
        user = User(
            name=data.name.strip(),
            role=data.role,
            active=True if data.active is None else data.active,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_user(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def update_user(self, user_id: int, data: UserWriteData) -> User:
        user = self.get_user(user_id)
        user.name = data.name.strip()
        user.role = data.role
        if data.active is not None:
            user.active = data.active
        user.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user

    def deactivate_user(self, user_id: int) -> None:
        user = self.get_user(user_id)
        user.active = False
        user.updated_at = datetime.utcnow()
        self.db.commit()
        logger.info("Deactivated user %d", user_id)

    # ---------- Projects ----------
    @staticmethod
    def _validate_project(data: ProjectWriteData) -> None:
        if not MIN_DIFFICULTY <= data.difficulty_multiplier <= MAX_DIFFICULTY:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="difficultyMultiplier must be between 0.1 and 5.",
            )

    def list_projects(self) -> list[Project]:
        return self.repo.list_projects()

    def get_project(self, project_id: int) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
        return project

    def create_project(self, data: ProjectWriteData) -> Project:
        self._validate_project(data)
        now = datetime.utcnow()
        project = Project(
            title=data.title.strip(),
            description=data.description,
            logo=data.logo,
            difficulty_multiplier=data.difficulty_multiplier,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_project(project)
        self.db.commit()
        self.db.refresh(project)
        return project

    def update_project(self, project_id: int, data: ProjectWriteData) -> Project:
        project = self.get_project(project_id)
        self._validate_project(data)
        project.title = data.title.strip()
        project.description = data.description
        project.logo = data.logo
        project.difficulty_multiplier = data.difficulty_multiplier
        project.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(project)
        return project

    def delete_project(self, project_id: int) -> None:
        project = self.get_project(project_id)

        task_count = self.repo.task_count_for_project(project.id)
        if task_count > 0:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "message": (
                        f"This project has {task_count} associated task(s). "
                        "Please delete or reassign these tasks first."
                    ),
                    "taskCount": task_count,
                },
            )

        self.repo.delete_project(project)
        self.db.commit()
        logger.info("Deleted project %d", project_id)

    # ---------- Statistics ----------
    def project_stats(self) -> dict[str, int]:
        return {"totalProjects": self.repo.project_count()}

    def user_stats(self) -> dict[str, int]:
        return {"teamMembers": self.repo.active_user_count()}
