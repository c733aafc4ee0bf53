from __future__ import annotations

from datetime import date, time
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from app.modules.scheduling.repository import SchedulingRepository


class _ScalarResult:
    def __init__(self, values: list) -> None:
        self._values = values

    def all(self) -> list:
        return list(self._values)


class RecordingSession:
    """Captures statements and replays canned rows."""

    def __init__(self, slot_ids: list, deleted_rows: list) -> None:
        self.slot_ids = slot_ids
        self.deleted_rows = deleted_rows
        self.statements: list = []

    async def scalars(self, stmt, **kwargs) -> _ScalarResult:
        self.statements.append(stmt)
        return _ScalarResult(self.slot_ids)

    async def execute(self, stmt, *args, **kwargs) -> list:
        self.statements.append(stmt)
        return self.deleted_rows


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.mark.asyncio
async def test_bulk_delete_locks_rows_in_window_order_before_deleting() -> None:
    rows = [
        SimpleNamespace(slot_date=date(2024, 6, 2), start_time=time(9, 0), end_time=time(10, 0)),
        SimpleNamespace(slot_date=date(2024, 6, 1), start_time=time(11, 0), end_time=time(12, 0)),
        SimpleNamespace(slot_date=date(2024, 6, 1), start_time=time(10, 0), end_time=time(11, 0)),
    ]
    session = RecordingSession([uuid4(), uuid4(), uuid4()], rows)

    windows = await SchedulingRepository(session).delete_between(7, date(2024, 6, 1), date(2024, 6, 7))

    lock_sql, delete_sql = (_sql(stmt) for stmt in session.statements)
    assert lock_sql.endswith(
        "ORDER BY availability_slots.slot_date ASC, availability_slots.start_time ASC, "
        "availability_slots.end_time ASC FOR UPDATE",
    )
    assert delete_sql.startswith("DELETE FROM availability_slots WHERE availability_slots.id IN")
    assert windows == [
        (date(2024, 6, 1), time(10, 0), time(11, 0)),
        (date(2024, 6, 1), time(11, 0), time(12, 0)),
        (date(2024, 6, 2), time(9, 0), time(10, 0)),
    ]


@pytest.mark.asyncio
async def test_bulk_delete_without_matches_skips_the_delete() -> None:
    session = RecordingSession([], [])

    windows = await SchedulingRepository(session).delete_on_dates(7, [date(2024, 6, 1)])

    assert windows == []
    assert len(session.statements) == 1
