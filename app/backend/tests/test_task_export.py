from __future__ import annotations

import asyncio
import os
import threading
from collections.abc import AsyncIterator
from datetime import datetime
from decimal import Decimal
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook
from openpyxl.worksheet._writer import ALL_TEMP_FILES
from sqlalchemy.orm import Session, sessionmaker

from conftest import make_project, make_task, make_user
from protrack.models.entities import TaskCategory, TaskPriority, TaskStatus
from protrack.repositories.tracking_repository import ExportTaskRecord
from protrack.services.spreadsheet_export import (
    EXPORT_COLUMNS,
    XLSX_MEDIA_TYPE,
    ExportStateError,
    TaskSpreadsheetWriter,
    WriterState,
    export_filename,
    stream_task_export,
)
from protrack.services.task_filters import build_task_predicates

HEADERS = [column.header for column in EXPORT_COLUMNS]


async def _collect(blocks: AsyncIterator[bytes]) -> bytes:
    return b"".join([block async for block in blocks])


def _data_rows(content: bytes) -> list[tuple]:
    workbook = load_workbook(BytesIO(content))
    rows = list(workbook["Tasks"].iter_rows(values_only=True))
    assert list(rows[0]) == HEADERS
    return rows[1:]


def _spool_files() -> set[str]:
    return set(ALL_TEMP_FILES)


def _record(task_id: int, score: str = "1.5") -> ExportTaskRecord:
    return ExportTaskRecord(
        id=task_id,
        title=f"Task {task_id}",
        issue_link=None,
        project_id=1,
        project_name="Portal",
        assigned_to_id=None,
        assigned_to_name="Unassigned",
        status=TaskStatus.ONLINE,
        priority=TaskPriority.LOW,
        category=TaskCategory.WEB,
        start_date=datetime(2024, 4, 1),
        end_date=None,
        contribution_score=Decimal(score),
        created_at=datetime(2024, 4, 2, 9, 30),
    )


def test_export_filename_policy() -> None:
    assert export_filename(None, None) == "tasks.xlsx"
    assert export_filename("2024-04-01", "2024-04-30") == "tasks_2024-04-01_to_2024-04-30.xlsx"
    assert export_filename("2024-04-01T00:00:00", None) == "tasks_2024-04-01_to_all.xlsx"
    assert export_filename(None, "2024-04-30") == "tasks_all_to_2024-04-30.xlsx"


def test_writer_formats_header_and_rows() -> None:
    writer = TaskSpreadsheetWriter()
    assert writer.state is WriterState.INITIALIZED

    assert writer.write_rows([_record(1), _record(2, score="-2")]) == 2
    assert writer.state is WriterState.ROWS_IN_FLIGHT

    output = writer.finalize()
    workbook = load_workbook(BytesIO(output.read()))
    output.close()
    sheet = workbook["Tasks"]

    assert sheet["A1"].font.bold is True
    assert sheet.cell(row=2, column=11).number_format == "0.00"
    assert sheet.cell(row=2, column=11).value == 1.5
    assert sheet.cell(row=3, column=11).value == -2
    assert [cell.value for cell in sheet[2]] == [
        1,
        "Task 1",
        None,
        "Portal",
        "Unassigned",
        "online",
        "low",
        "web",
        "04/01/2024",
        None,
        1.5,
        "04/02/2024",
    ]


def test_writer_rejects_use_after_finalize() -> None:
    writer = TaskSpreadsheetWriter()
    writer.finalize().close()

    assert writer.state is WriterState.FINALIZED
    with pytest.raises(ExportStateError):
        writer.write_rows([_record(1)])
    with pytest.raises(ExportStateError):
        writer.finalize()


def test_empty_export_is_a_header_only_workbook() -> None:
    writer = TaskSpreadsheetWriter()
    output = writer.finalize()

    assert _data_rows(output.read()) == []
    assert writer.rows_written == 0
    output.close()


def test_stream_matches_listing_across_chunk_boundaries(
    client: TestClient,
    db_session: Session,
    session_factory: sessionmaker[Session],
) -> None:
    project = make_project(db_session)
    same_instant = datetime(2024, 1, 1, 12, 0)
    for index in range(7):
        make_task(db_session, project, title=f"Task {index}", status=TaskStatus.ONLINE, created_at=same_instant)
    make_task(db_session, project, title="other status", status=TaskStatus.TESTING, created_at=same_instant)
    make_task(db_session, project, title="inactive", status=TaskStatus.ONLINE, active=False)

    params = {"status": "online"}
    listed = client.get("/api/v1/tasks", params=params).json()["pagination"]["total"]

    content = asyncio.run(
        _collect(stream_task_export(session_factory, build_task_predicates(params), chunk_size=3, block_size=1024))
    )
    rows = _data_rows(content)

    assert len(rows) == listed == 7
    assert len({row[0] for row in rows}) == 7
    # created_at ties fall back to newest id first.
    assert [row[0] for row in rows] == sorted((row[0] for row in rows), reverse=True)


def test_stream_orders_by_creation_time_and_fills_placeholders(
    db_session: Session,
    session_factory: sessionmaker[Session],
) -> None:
    project = make_project(db_session, title="Portal")
    user = make_user(db_session, name="Dana")
    older = make_task(db_session, project, title="older", assignee=user, created_at=datetime(2024, 1, 1))
    newer = make_task(db_session, project, title="newer", created_at=datetime(2024, 2, 1))

    content = asyncio.run(_collect(stream_task_export(session_factory, [], chunk_size=1)))
    rows = _data_rows(content)

    assert [row[0] for row in rows] == [newer.id, older.id]
    assert rows[0][4] == "Unassigned"
    assert rows[1][4] == "Dana"
    assert rows[1][3] == "Portal"


def test_stream_stops_fetching_once_client_disconnects(
    db_session: Session,
    session_factory: sessionmaker[Session],
) -> None:
    project = make_project(db_session)
    for index in range(5):
        make_task(db_session, project, title=f"Task {index}")

    probes: list[int] = []

    async def is_disconnected() -> bool:
        probes.append(1)
        return len(probes) > 1

    content = asyncio.run(
        _collect(stream_task_export(session_factory, [], chunk_size=2, is_disconnected=is_disconnected))
    )

    assert content == b""
    assert len(probes) == 2


def test_stream_failure_propagates(session_factory: sessionmaker[Session]) -> None:
    class Unsupported:
        pass

    with pytest.raises(TypeError):
        asyncio.run(_collect(stream_task_export(session_factory, [Unsupported()], chunk_size=2)))


def test_export_endpoint_streams_workbook_with_attachment_name(client: TestClient, db_session: Session) -> None:
    project = make_project(db_session)
    make_task(db_session, project, start_date=datetime(2024, 4, 2), score="2.25")
    make_task(db_session, project, start_date=datetime(2023, 4, 2))

    response = client.get("/api/v1/tasks/export", params={"startDate": "2024-04-01", "endDate": "2024-04-30"})

    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX_MEDIA_TYPE
    assert response.headers["content-disposition"] == 'attachment; filename="tasks_2024-04-01_to_2024-04-30.xlsx"'
    rows = _data_rows(response.content)
    assert len(rows) == 1
    assert rows[0][10] == 2.25


def test_export_endpoint_without_dates_uses_plain_filename(client: TestClient) -> None:
    response = client.get("/api/v1/tasks/export")

    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="tasks.xlsx"'
    assert _data_rows(response.content) == []


def test_export_endpoint_rejects_bad_filters_before_streaming(client: TestClient) -> None:
    response = client.get("/api/v1/tasks/export", params={"priority": "urgent"})

    assert response.status_code == 422
    assert response.json()["detail"][0]["loc"] == ["query", "priority"]


def test_discard_removes_worksheet_spool_of_unfinished_export() -> None:
    before = _spool_files()
    writer = TaskSpreadsheetWriter()
    writer.write_rows([_record(1), _record(2)])
    spooled = _spool_files() - before
    assert len(spooled) == 1
    (path,) = spooled
    assert os.path.exists(path)

    writer.discard()

    assert not os.path.exists(path)
    assert _spool_files() - before == set()
    assert writer.state is WriterState.FINALIZED
    with pytest.raises(ExportStateError):
        writer.write_rows([_record(3)])


def test_discard_after_finalize_is_harmless() -> None:
    before = _spool_files()
    writer = TaskSpreadsheetWriter()
    writer.write_rows([_record(1)])
    output = writer.finalize()

    writer.discard()
    writer.discard()

    assert _data_rows(output.read())[0][0] == 1
    output.close()
    assert _spool_files() - before == set()


def test_disconnected_export_leaves_no_spool_file(
    db_session: Session,
    session_factory: sessionmaker[Session],
) -> None:
    project = make_project(db_session)
    for index in range(5):
        make_task(db_session, project, title=f"Task {index}")
    probes: list[int] = []

    async def is_disconnected() -> bool:
        probes.append(1)
        return len(probes) > 2

    before = _spool_files()
    content = asyncio.run(
        _collect(stream_task_export(session_factory, [], chunk_size=2, is_disconnected=is_disconnected))
    )

    assert content == b""
    assert _spool_files() - before == set()


def test_failed_export_leaves_no_spool_file(session_factory: sessionmaker[Session]) -> None:
    class Unsupported:
        pass

    before = _spool_files()
    with pytest.raises(TypeError):
        asyncio.run(_collect(stream_task_export(session_factory, [Unsupported()], chunk_size=2)))

    assert _spool_files() - before == set()


def test_discard_waits_for_in_flight_chunk_write() -> None:
    before = _spool_files()
    writer = TaskSpreadsheetWriter()
    first_row_written = threading.Event()
    release = threading.Event()
    errors: list[Exception] = []

    def slow_chunk():
        yield _record(1)
        first_row_written.set()
        release.wait(5)
        yield _record(2)

    def write() -> None:
        try:
            writer.write_rows(slow_chunk())
        except Exception as exc:
            errors.append(exc)

    writer_thread = threading.Thread(target=write)
    writer_thread.start()
    assert first_row_written.wait(5)

    discard_thread = threading.Thread(target=writer.discard)
    discard_thread.start()
    discard_thread.join(0.2)
    assert discard_thread.is_alive()

    release.set()
    writer_thread.join(5)
    discard_thread.join(5)

    assert errors == []
    assert writer.rows_written == 2
    assert writer.state is WriterState.FINALIZED
    assert _spool_files() - before == set()
