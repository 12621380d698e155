"""Contribution report endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from protrack.api.query_params import raw_filter_params
from protrack.db.dependencies import get_db_session
from protrack.services.contribution_service import ContributionService

router = APIRouter(prefix="/contributions", tags=["contributions"])


@router.get("")
def get_contributions(request: Request, db: Session = Depends(get_db_session)) -> dict[str, object]:
    """Per-user contribution rollup for ``projectId``, ``userId``, ``category``, ``startDate``, ``endDate``."""

    return ContributionService(db).contribution_report(raw_filter_params(request))
