"""Translate raw task-filter query parameters into typed predicates.

The builder is pure: it never touches the store. The predicates it returns
are plain value objects; ``protrack.repositories.task_queries`` owns their
translation into SQL.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, time, timezone

from protrack.models.entities import TaskCategory, TaskPriority, TaskStatus

END_OF_DAY = time(23, 59, 59, 999999)

# Query parameter -> task attribute, for the comma-separated id filters.
ID_FILTERS: dict[str, str] = {
    "assignedToId": "assigned_to_id",
    "projectId": "project_id",
}

# Query parameter -> (task attribute, enum type).
ENUM_FILTERS: dict[str, tuple[str, type[enum.Enum]]] = {
    "status": ("status", TaskStatus),
    "priority": ("priority", TaskPriority),
    "category": ("category", TaskCategory),
}

DATE_RANGE_FIELDS = ("start_date", "end_date")


class FilterValidationError(ValueError):
    """Raised when a filter parameter cannot be parsed."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


@dataclass(frozen=True, slots=True)
class EqualsOneOf:
    """``task.<field>`` is one of ``values``."""

    field: str
    values: tuple[object, ...]


@dataclass(frozen=True, slots=True)
class DateRange:
    """Any of ``fields`` falls within ``[start, end]``; a missing bound is open."""

    fields: tuple[str, ...]
    start: datetime | None
    end: datetime | None


TaskPredicate = EqualsOneOf | DateRange


def split_multi_value(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_ids(param: str, raw: str | None) -> tuple[int, ...]:
    parsed: list[int] = []
    for item in split_multi_value(raw):
        try:
            parsed.append(int(item))
        except ValueError as exc:
            raise FilterValidationError(param, f"'{item}' is not a valid integer id.") from exc
    return tuple(dict.fromkeys(parsed))


def _parse_enum(param: str, raw: str | None, enum_cls: type[enum.Enum]) -> tuple[enum.Enum, ...]:
    allowed = [member.value for member in enum_cls]
    parsed: list[enum.Enum] = []
    for item in split_multi_value(raw):
        try:
            parsed.append(enum_cls(item.lower()))
        except ValueError as exc:
            raise FilterValidationError(
                param,
                f"'{item}' is not one of: {', '.join(allowed)}.",
            ) from exc
    return tuple(dict.fromkeys(parsed))


def parse_filter_datetime(param: str, raw: str) -> datetime:
    """Parse an ISO-8601 date or datetime into a naive UTC datetime."""

    value = raw.strip()
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise FilterValidationError(param, f"'{raw}' is not a valid ISO-8601 date.") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def build_date_range(start_raw: str | None, end_raw: str | None) -> DateRange | None:
    start = parse_filter_datetime("startDate", start_raw) if start_raw and start_raw.strip() else None
    end = parse_filter_datetime("endDate", end_raw) if end_raw and end_raw.strip() else None
    if start is None and end is None:
        return None

    if end is not None:
        # The whole final calendar day is part of the window.
        end = datetime.combine(end.date(), END_OF_DAY)
    if start is not None and end is not None and start > end:
        raise FilterValidationError("startDate", "startDate must not be after endDate.")
    return DateRange(fields=DATE_RANGE_FIELDS, start=start, end=end)


def build_task_predicates(params: Mapping[str, str | None]) -> list[TaskPredicate]:
    """Build the AND-ed predicate list for a raw query parameter map.

    Multi-valued keys accept comma-separated values; an empty value means no
    filter on that field. Dates match when either the task's start or end
    date falls inside the requested window.
    """

    predicates: list[TaskPredicate] = []

    for param, field in ID_FILTERS.items():
        ids = _parse_ids(param, params.get(param))
        if ids:
            predicates.append(EqualsOneOf(field=field, values=ids))

    date_range = build_date_range(params.get("startDate"), params.get("endDate"))
    if date_range is not None:
        predicates.append(date_range)

    for param, (field, enum_cls) in ENUM_FILTERS.items():
        members = _parse_enum(param, params.get(param), enum_cls)
        if members:
            predicates.append(EqualsOneOf(field=field, values=members))

    return predicates
