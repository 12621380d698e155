"""SQL translation of task predicates and listing sort order."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import ColumnElement, Select, and_, case, or_, true

from protrack.models.entities import Task, TaskCategory, TaskPriority, TaskStatus
from protrack.services.task_filters import DateRange, EqualsOneOf, TaskPredicate

PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}

STATUS_RANK: dict[TaskStatus, int] = {
    TaskStatus.DEVELOPING: 1,
    TaskStatus.TESTING: 2,
    TaskStatus.ONLINE: 3,
    TaskStatus.SUSPENDED: 4,
    TaskStatus.NOT_STARTED: 5,
    TaskStatus.CANCELED: 6,
}

CATEGORY_RANK: dict[TaskCategory, int] = {
    TaskCategory.H5: 1,
    TaskCategory.OP: 2,
    TaskCategory.WEB: 3,
    TaskCategory.ARCHITECTURE: 4,
}


def _task_column(field: str) -> ColumnElement:
    column = Task.__table__.columns.get(field)
    if column is None:
        raise ValueError(f"Unknown task field in predicate: {field}")
    return column


def _rank(column: ColumnElement, ranks: dict) -> ColumnElement:
    return case({member.value: rank for member, rank in ranks.items()}, value=column, else_=len(ranks) + 1)


def predicate_clause(predicate: TaskPredicate) -> ColumnElement[bool]:
    """Render one predicate as a boolean SQL expression over ``tasks``."""

    if isinstance(predicate, EqualsOneOf):
        return _task_column(predicate.field).in_(predicate.values)

    if isinstance(predicate, DateRange):
        per_field: list[ColumnElement[bool]] = []
        for field in predicate.fields:
            column = _task_column(field)
            bounds = []
            if predicate.start is not None:
                bounds.append(column >= predicate.start)
            if predicate.end is not None:
                bounds.append(column <= predicate.end)
            per_field.append(and_(*bounds))
        return or_(*per_field)

    raise TypeError(f"Unsupported task predicate: {predicate!r}")


def task_conditions(predicates: Sequence[TaskPredicate], *, include_inactive: bool = False) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = [] if include_inactive else [Task.active.is_(true())]
    conditions.extend(predicate_clause(predicate) for predicate in predicates)
    return conditions


def apply_predicates(stmt: Select, predicates: Sequence[TaskPredicate], *, include_inactive: bool = False) -> Select:
    conditions = task_conditions(predicates, include_inactive=include_inactive)
    if not conditions:
        return stmt
    return stmt.where(and_(*conditions))


def listing_order() -> tuple[ColumnElement, ...]:
    """Most urgent, most active work first; recency breaks ties."""

    return (
        _rank(Task.priority, PRIORITY_RANK),
        _rank(Task.status, STATUS_RANK),
        _rank(Task.category, CATEGORY_RANK),
        Task.end_date.desc().nulls_last(),
        Task.id.desc(),
    )


def export_order() -> tuple[ColumnElement, ...]:
    # id breaks created_at ties so offset paging never repeats or skips rows.
    return (Task.created_at.desc(), Task.id.desc())
