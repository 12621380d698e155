"""Repository helpers for users, projects, tasks and their joined read models."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, select, true
from sqlalchemy.orm import Session

from protrack.models.entities import Project, Task, TaskCategory, TaskPriority, TaskStatus, User, UserRole
from protrack.repositories.task_queries import apply_predicates, export_order, listing_order
from protrack.services.task_filters import TaskPredicate

UNKNOWN_PROJECT = "Unknown Project"
UNASSIGNED = "Unassigned"


@dataclass(slots=True)
class ExportTaskRecord:
    """Task joined with its project title and assignee name."""

    id: int
    title: str
    issue_link: str | None
    project_id: int
    project_name: str
    assigned_to_id: int | None
    assigned_to_name: str
    status: TaskStatus
    priority: TaskPriority
    category: TaskCategory
    start_date: datetime | None
    end_date: datetime | None
    contribution_score: Decimal | None
    created_at: datetime | None


@dataclass(slots=True)
class ContributionRow:
    """Task joined with project difficulty and assignee identity."""

    task_id: int
    title: str | None
    category: TaskCategory | str | None
    start_date: datetime | None
    end_date: datetime | None
    contribution_score: object
    project_id: int | None
    project_title: str | None
    project_difficulty: object
    assigned_to_id: int | None
    user_name: str | None
    user_role: UserRole | str | None


class TrackingRepository:
    """Persistence operations used by the task, contribution and catalog services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Users ----------
    def list_users(self, *, include_inactive: bool = False) -> list[User]:
        stmt = select(User)
        if not include_inactive:
            stmt = stmt.where(User.active.is_(true()))
        return self.db.scalars(stmt.order_by(User.name.asc(), User.id.asc())).all()

    def get_user(self, user_id: int) -> User | None:
        return self.db.scalar(select(User).where(User.id == user_id))

    def add_user(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def active_user_count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(User).where(User.active.is_(true()))) or 0

    # ---------- Projects ----------
    def list_projects(self) -> list[Project]:
        return self.db.scalars(select(Project).order_by(Project.title.asc(), Project.id.asc())).all()

    def get_project(self, project_id: int) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def add_project(self, project: Project) -> Project:
        self.db.add(project)
        self.db.flush()
        return project

    def delete_project(self, project: Project) -> None:
        self.db.delete(project)
        self.db.flush()

    def project_count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(Project)) or 0

    def task_count_for_project(self, project_id: int) -> int:
        # Soft-deleted tasks still hold the foreign key.
        return self.db.scalar(select(func.count()).select_from(Task).where(Task.project_id == project_id)) or 0

    # ---------- Tasks ----------
    def get_task(self, task_id: int) -> Task | None:
        return self.db.scalar(select(Task).where(Task.id == task_id))

    def add_task(self, task: Task) -> Task:
        self.db.add(task)
        self.db.flush()
        return task

    def count_tasks(self, predicates: Sequence[TaskPredicate]) -> int:
        stmt = apply_predicates(select(func.count()).select_from(Task), predicates)
        return self.db.scalar(stmt) or 0

    def list_tasks_page(self, predicates: Sequence[TaskPredicate], *, limit: int, offset: int) -> list[Task]:
        stmt = apply_predicates(select(Task), predicates)
        return self.db.scalars(stmt.order_by(*listing_order()).limit(limit).offset(offset)).all()

    def fetch_export_chunk(
        self,
        predicates: Sequence[TaskPredicate],
        *,
        chunk_size: int,
        offset: int,
    ) -> list[ExportTaskRecord]:
        stmt = (
            select(
                Task.id,
                Task.title,
                Task.issue_link,
                Task.project_id,
                Project.title.label("project_name"),
                Task.assigned_to_id,
                User.name.label("assigned_to_name"),
                Task.status,
                Task.priority,
                Task.category,
                Task.start_date,
                Task.end_date,
                Task.contribution_score,
                Task.created_at,
            )
            .select_from(Task)
            .outerjoin(Project, Project.id == Task.project_id)
            .outerjoin(User, User.id == Task.assigned_to_id)
        )
        stmt = apply_predicates(stmt, predicates).order_by(*export_order()).limit(chunk_size).offset(offset)

        return [
            ExportTaskRecord(
                id=row.id,
                title=row.title,
                issue_link=row.issue_link,
                project_id=row.project_id,
                project_name=row.project_name or UNKNOWN_PROJECT,
                assigned_to_id=row.assigned_to_id,
                assigned_to_name=row.assigned_to_name or UNASSIGNED,
                status=row.status,
                priority=row.priority,
                category=row.category,
                start_date=row.start_date,
                end_date=row.end_date,
                contribution_score=row.contribution_score,
                created_at=row.created_at,
            )
            for row in self.db.execute(stmt)
        ]

    def list_contribution_rows(self, predicates: Sequence[TaskPredicate]) -> list[ContributionRow]:
        stmt = (
            select(
                Task.id,
                Task.title,
                Task.category,
                Task.start_date,
                Task.end_date,
                Task.contribution_score,
                Task.project_id,
                Project.title.label("project_title"),
                Project.difficulty_multiplier,
                Task.assigned_to_id,
                User.name.label("user_name"),
                User.role.label("user_role"),
            )
            .select_from(Task)
            .outerjoin(Project, Project.id == Task.project_id)
            .outerjoin(User, User.id == Task.assigned_to_id)
            # Deactivated users drop out of the rollup; unassigned rows are kept for the aggregator to skip.
            .where((Task.assigned_to_id.is_(None)) | (User.active.is_(true())))
        )
        stmt = apply_predicates(stmt, predicates).order_by(Task.id.asc())

        return [
            ContributionRow(
                task_id=row.id,
                title=row.title,
                category=row.category,
                start_date=row.start_date,
                end_date=row.end_date,
                contribution_score=row.contribution_score,
                project_id=row.project_id,
                project_title=row.project_title,
                project_difficulty=row.difficulty_multiplier,
                assigned_to_id=row.assigned_to_id,
                user_name=row.user_name,
                user_role=row.user_role,
            )
            for row in self.db.execute(stmt)
        ]

    def task_stats(self) -> dict[str, int]:
        active = Task.active.is_(true())
        in_progress = case((active & Task.status.in_([TaskStatus.DEVELOPING, TaskStatus.TESTING]), 1), else_=0)
        completed = case((active & (Task.status == TaskStatus.ONLINE), 1), else_=0)
        total = case((active, 1), else_=0)
        row = self.db.execute(
            select(
                func.coalesce(func.sum(in_progress), 0).label("active_tasks"),
                func.coalesce(func.sum(completed), 0).label("completed_tasks"),
                func.coalesce(func.sum(total), 0).label("total_tasks"),
            ).select_from(Task)
        ).one()
        return {
            "active_tasks": int(row.active_tasks),
            "completed_tasks": int(row.completed_tasks),
            "total_tasks": int(row.total_tasks),
        }
