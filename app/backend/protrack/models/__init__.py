"""ORM model package."""

from protrack.models.entities import (
    Project,
    Task,
    TaskCategory,
    TaskPriority,
    TaskStatus,
    User,
    UserRole,
)

__all__ = [
    "Project",
    "Task",
    "TaskCategory",
    "TaskPriority",
    "TaskStatus",
    "User",
    "UserRole",
]
