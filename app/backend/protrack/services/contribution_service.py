"""Contribution score rollups per user, project and category.

A task's effective contribution is its raw score multiplied by its project's
difficulty multiplier. It is never stored; every report recomputes it from
the task rows matched by the request filters.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import datetime

from sqlalchemy.orm import Session

from protrack.models.entities import TaskCategory
from protrack.repositories.tracking_repository import ContributionRow, TrackingRepository
from protrack.services.task_filters import build_task_predicates

logger = logging.getLogger(__name__)

CATEGORY_KEYS: tuple[str, ...] = tuple(category.value for category in TaskCategory)
UNKNOWN = "Unknown"

# Aggregation endpoint parameter -> filter builder parameter.
CONTRIBUTION_FILTER_PARAMS: dict[str, str] = {
    "projectId": "projectId",
    "userId": "assignedToId",
    "category": "category",
    "startDate": "startDate",
    "endDate": "endDate",
}


def to_number(value: object, default: float) -> float:
    """Best-effort numeric coercion: absent -> ``default``, unparseable -> 0."""

    if value is None or value == "":
        return default
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def effective_contribution(contribution_score: object, difficulty_multiplier: object) -> float:
    return to_number(contribution_score, 0.0) * to_number(difficulty_multiplier, 1.0)


def _enum_value(value: object) -> str | None:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def aggregate_contributions(rows: Iterable[ContributionRow]) -> dict[str, object]:
    """Roll task contributions up into the per-user report payload.

    Rows without an assignee are skipped. Users and projects keep the order in
    which they are first seen.
    """

    users: dict[int, dict[str, object]] = {}

    for row in rows:
        if row.assigned_to_id is None:
            continue

        user = users.get(row.assigned_to_id)
        if user is None:
            user = {
                "id": row.assigned_to_id,
                "name": row.user_name or UNKNOWN,
                "role": _enum_value(row.user_role) or UNKNOWN,
                "totalContribution": 0.0,
                "projects": {},
                "projectContributions": [],
                "categoryContributions": {key: 0.0 for key in CATEGORY_KEYS},
                "categoryContributionsArray": [],
            }
            users[row.assigned_to_id] = user

        contribution = effective_contribution(row.contribution_score, row.project_difficulty)
        user["totalContribution"] += contribution

        category = _enum_value(row.category)
        categories: dict[str, float] = user["categoryContributions"]
        if category in categories:
            categories[category] += contribution

        if row.project_id is not None:
            projects: dict[int, dict[str, object]] = user["projects"]
            project = projects.get(row.project_id)
            if project is None:
                project = {
                    "id": row.project_id,
                    "title": row.project_title or UNKNOWN,
                    "difficulty": to_number(row.project_difficulty, 1.0),
                    "totalContribution": 0.0,
                    "tasks": [],
                }
                projects[row.project_id] = project
            project["totalContribution"] += contribution
            project["tasks"].append(
                {
                    "id": row.task_id,
                    "title": row.title or UNKNOWN,
                    "contribution": contribution,
                    "startDate": _isoformat(row.start_date),
                    "endDate": _isoformat(row.end_date),
                    "category": category,
                }
            )

    for user in users.values():
        user["projectContributions"] = [
            {"name": project["title"], "value": project["totalContribution"]}
            for project in user["projects"].values()
        ]
        user["categoryContributionsArray"] = [
            {"name": key.upper(), "value": value} for key, value in user["categoryContributions"].items()
        ]

    total = sum(user["totalContribution"] for user in users.values())
    return {"users": users, "totalContributions": total}


class ContributionService:
    """Builds the contribution report for a set of request filters."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = TrackingRepository(db)

    def contribution_report(self, params: Mapping[str, str | None]) -> dict[str, object]:
        filter_params = {
            target: params.get(source) for source, target in CONTRIBUTION_FILTER_PARAMS.items()
        }
        predicates = build_task_predicates(filter_params)
        rows = self.repo.list_contribution_rows(predicates)
        report = aggregate_contributions(rows)
        logger.debug("Aggregated %d task rows into %d users", len(rows), len(report["users"]))
        return report
