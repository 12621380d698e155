"""Spreadsheet export endpoint for filtered task sets."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from protrack.api.query_params import raw_filter_params
from protrack.core.config import get_settings
from protrack.db.dependencies import get_session_factory
from protrack.services.spreadsheet_export import XLSX_MEDIA_TYPE, export_filename, stream_task_export
from protrack.services.task_filters import build_task_predicates

router = APIRouter(prefix="/tasks", tags=["exports"])


@router.get("/export")
async def export_tasks(
    request: Request,
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> StreamingResponse:
    params = raw_filter_params(request)
    # Filter errors surface here, before the response has started.
    predicates = build_task_predicates(params)
    settings = get_settings()
    filename = export_filename(params.get("startDate"), params.get("endDate"))

    body = stream_task_export(
        session_factory,
        predicates,
        chunk_size=settings.export_chunk_size,
        block_size=settings.export_stream_block_size,
        date_format=settings.export_date_format,
        spool_max_size=settings.export_spool_max_size,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(
        body,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
