from __future__ import annotations

from collections.abc import Generator
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from protrack.db.base import Base
from protrack.db.dependencies import get_db_session, get_session_factory
import protrack.models.entities  # noqa: F401
from protrack.main import create_app
from protrack.models.entities import (
    Project,
    Task,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    User,
    UserRole,
)

TEST_TABLES = [
    User.__table__,
    Project.__table__,
    Task.__table__,
]


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_session: Session, session_factory: sessionmaker[Session]) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(
    db: Session,
    *,
    name: str = "Alice",
    role: UserRole = UserRole.DEVELOPER,
    active: bool = True,
) -> User:
    user = User(name=name, role=role, active=active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_project(db: Session, *, title: str = "Portal", difficulty: float = 1.0) -> Project:
    project = Project(title=title, difficulty_multiplier=difficulty)
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def make_task(
    db: Session,
    project: Project,
    *,
    title: str = "Task",
    assignee: User | None = None,
    status: TaskStatus = TaskStatus.NOT_STARTED,
    priority: TaskPriority = TaskPriority.MEDIUM,
    category: TaskCategory = TaskCategory.OP,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    score: str = "0",
    active: bool = True,
    created_at: datetime | None = None,
) -> Task:
    task = Task(
        title=title,
        project_id=project.id,
        assigned_to_id=assignee.id if assignee is not None else None,
        status=status,
        priority=priority,
        category=category,
        start_date=start_date,
        end_date=end_date,
        contribution_score=Decimal(score),
        active=active,
    )
    if created_at is not None:
        task.created_at = created_at
    db.add(task)
    db.commit()
    db.refresh(task)
    return task
