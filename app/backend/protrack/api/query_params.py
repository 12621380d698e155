"""Helpers shared by routes that accept task filter parameters."""

from __future__ import annotations

from fastapi import Request


def raw_filter_params(request: Request) -> dict[str, str]:
    """Query string as a flat map; repeated keys are joined with commas."""

    query = request.query_params
    return {key: ",".join(query.getlist(key)) for key in query.keys()}
