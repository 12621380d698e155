"""Chunked task export into an ``.xlsx`` workbook."""

from __future__ import annotations

import enum
import logging
import os
import tempfile
import threading
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import IO

from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet._write_only import WriteOnlyWorksheet
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from protrack.repositories.tracking_repository import ExportTaskRecord, TrackingRepository
from protrack.services.task_filters import TaskPredicate

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SCORE_NUMBER_FORMAT = "0.00"
SHEET_TITLE = "Tasks"


@dataclass(frozen=True, slots=True)
class ExportColumn:
    key: str
    header: str
    width: int


EXPORT_COLUMNS: tuple[ExportColumn, ...] = (
    ExportColumn("id", "ID", 10),
    ExportColumn("title", "Title", 30),
    ExportColumn("issue_link", "Issue Link", 30),
    ExportColumn("project_name", "Project", 20),
    ExportColumn("assigned_to_name", "Assigned To", 20),
    ExportColumn("status", "Status", 15),
    ExportColumn("priority", "Priority", 15),
    ExportColumn("category", "Category", 15),
    ExportColumn("start_date", "Start Date", 20),
    ExportColumn("end_date", "End Date", 20),
    ExportColumn("contribution_score", "Contribution Score", 20),
    ExportColumn("created_at", "Created At", 20),
)


class WriterState(str, enum.Enum):
    INITIALIZED = "initialized"
    ROWS_IN_FLIGHT = "rows_in_flight"
    FINALIZED = "finalized"


class ExportStateError(RuntimeError):
    """Operation not allowed in the writer's current state."""


def export_filename(start_date: str | None, end_date: str | None) -> str:
    """``tasks_<start>_to_<end>.xlsx`` for a date-filtered export, else ``tasks.xlsx``."""

    if not start_date and not end_date:
        return "tasks.xlsx"
    start = start_date.split("T")[0] if start_date else "all"
    end = end_date.split("T")[0] if end_date else "all"
    return f"tasks_{start}_to_{end}.xlsx"


class TaskSpreadsheetWriter:
    """Write-only workbook with a fixed task column layout.

    Rows are appended to openpyxl's on-disk worksheet spool as soon as they are
    written, so memory use is bounded by the caller's chunk size. The writer
    accepts rows until ``finalize`` is called, and ``finalize`` runs once.
    ``discard`` removes the spool file of an export that never finalized.

    Writes, finalization and discard are serialized on one lock, so a discard
    issued while a chunk is being written waits for that chunk to land.
    """

    def __init__(self, *, date_format: str = "%m/%d/%Y", spool_max_size: int = 8 * 1024 * 1024) -> None:
        self.date_format = date_format
        self.spool_max_size = spool_max_size
        self.rows_written = 0
        self._lock = threading.Lock()

        self._workbook = Workbook(write_only=True)
        self._sheet = self._workbook.create_sheet(SHEET_TITLE)
        for index, column in enumerate(EXPORT_COLUMNS, start=1):
            self._sheet.column_dimensions[get_column_letter(index)].width = column.width

        bold = Font(bold=True)
        header = []
        for column in EXPORT_COLUMNS:
            cell = WriteOnlyCell(self._sheet, value=column.header)
            cell.font = bold
            header.append(cell)
        self._sheet.append(header)
        self.state = WriterState.INITIALIZED

    def _require_open(self, operation: str) -> None:
        if self.state is WriterState.FINALIZED:
            raise ExportStateError(f"Cannot {operation}: workbook is already finalized.")

    def _format_date(self, value: datetime | None) -> str:
        return value.strftime(self.date_format) if value is not None else ""

    def _row(self, sheet: WriteOnlyWorksheet, record: ExportTaskRecord) -> list[object]:
        score = WriteOnlyCell(sheet, value=round(float(record.contribution_score or 0), 2))
        score.number_format = SCORE_NUMBER_FORMAT
        return [
            record.id,
            record.title,
            record.issue_link,
            record.project_name,
            record.assigned_to_name,
            record.status.value,
            record.priority.value,
            record.category.value,
            self._format_date(record.start_date),
            self._format_date(record.end_date),
            score,
            self._format_date(record.created_at),
        ]

    def write_rows(self, records: Iterable[ExportTaskRecord]) -> int:
        with self._lock:
            self._require_open("write rows")
            sheet = self._sheet
            count = 0
            for record in records:
                sheet.append(self._row(sheet, record))
                count += 1
            self.rows_written += count
            if count:
                self.state = WriterState.ROWS_IN_FLIGHT
            return count

    def finalize(self) -> IO[bytes]:
        """Close the workbook and return the finished file, rewound to the start."""

        with self._lock:
            self._require_open("finalize")
            self.state = WriterState.FINALIZED
            output = tempfile.SpooledTemporaryFile(max_size=self.spool_max_size)
            try:
                # Saving consumes and deletes the worksheet spool file.
                self._workbook.save(output)
            except Exception:
                output.close()
                raise
            output.seek(0)
            return output

    def discard(self) -> None:
        with self._lock:
            sheet = self._sheet
            self.state = WriterState.FINALIZED
            self._sheet = None
            self._workbook = None
            if sheet is not None:
                _remove_spool(sheet)


def _remove_spool(sheet: WriteOnlyWorksheet) -> None:
    # openpyxl keeps write-only rows in a delete=False temp file until Workbook.save.
    spool = sheet._writer
    if spool is None:
        return
    if not sheet.closed:
        try:
            sheet.close()
        except Exception:
            logger.warning("Could not close abandoned worksheet spool %s", spool.out, exc_info=True)
            spool.close()
    if os.path.exists(spool.out):
        spool.cleanup()


async def stream_task_export(
    session_factory: sessionmaker[Session],
    predicates: Sequence[TaskPredicate],
    *,
    chunk_size: int,
    block_size: int = 64 * 1024,
    date_format: str = "%m/%d/%Y",
    spool_max_size: int = 8 * 1024 * 1024,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[bytes]:
    """Fetch, write and emit the export one chunk at a time.

    Chunk N+1 is only requested once chunk N is committed to the workbook.
    The archive is only assembled by ``finalize``, so the first byte is sent
    after the last chunk has been written; the client-disconnect probe,
    checked before every fetch, is what stops abandoned work. Errors are
    logged and re-raised so the streaming response aborts instead of ending
    as a truncated but apparently complete download.
    """

    writer = TaskSpreadsheetWriter(date_format=date_format, spool_max_size=spool_max_size)
    session = session_factory()
    output: IO[bytes] | None = None
    offset = 0
    try:
        repo = TrackingRepository(session)
        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.warning("Client disconnected after %d exported tasks; stopping export", offset)
                return
            chunk = await run_in_threadpool(
                repo.fetch_export_chunk,
                predicates,
                chunk_size=chunk_size,
                offset=offset,
            )
            if not chunk:
                break
            await run_in_threadpool(writer.write_rows, chunk)
            offset += len(chunk)
            logger.info("Processed %d tasks", offset)

        output = await run_in_threadpool(writer.finalize)
        while True:
            block = await run_in_threadpool(output.read, block_size)
            if not block:
                break
            yield block
        logger.info("Task export finished with %d rows", writer.rows_written)
    except Exception:
        logger.exception("Task export failed after %d tasks", offset)
        raise
    finally:
        writer.discard()
        if output is not None:
            output.close()
        session.close()
