from __future__ import annotations

import json
from collections.abc import AsyncIterator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import DBAPIError

import app.core.database as database_module
from app.core.config import get_settings
from app.core.security import create_access_token
from app.main import app
from app.modules.scheduling.service import get_scheduling_service
from app.shared.exceptions import LOCK_CONTENTION_MESSAGE, database_exception_handler
from tests.fakes import FakeSessionFactory

API_PREFIX = get_settings().api_prefix


class DriverError(Exception):
    def __init__(self, sqlstate: str | None) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def db_error(sqlstate: str | None) -> DBAPIError:
    return DBAPIError("SELECT 1", {}, DriverError(sqlstate))


@pytest.mark.parametrize(
    ("sqlstate", "expected"),
    [("40P01", True), ("55P03", True), ("23505", False), (None, False)],
)
def test_is_lock_contention(sqlstate: str | None, expected: bool) -> None:
    assert database_module.is_lock_contention(db_error(sqlstate)) is expected


def test_is_lock_contention_reads_wrapped_driver_error() -> None:
    wrapper = Exception("adapted")
    wrapper.__cause__ = DriverError("40P01")

    assert database_module.is_lock_contention(DBAPIError("SELECT 1", {}, wrapper)) is True


@pytest.mark.asyncio
async def test_get_db_session_commits_on_success(monkeypatch: pytest.MonkeyPatch) -> None:
    factory = FakeSessionFactory()
    monkeypatch.setattr(database_module, "SessionLocal", factory)

    generator = database_module.get_db_session()
    session = await generator.__anext__()
    with pytest.raises(StopAsyncIteration):
        await generator.__anext__()

    assert session is factory.sessions[0]
    assert session.committed is True
    assert session.rolled_back is False


@pytest.mark.asyncio
@pytest.mark.parametrize("sqlstate", ["40P01", "23505"])
async def test_get_db_session_rolls_back_database_errors(
    monkeypatch: pytest.MonkeyPatch,
    sqlstate: str,
) -> None:
    factory = FakeSessionFactory()
    monkeypatch.setattr(database_module, "SessionLocal", factory)
    error = db_error(sqlstate)

    generator = database_module.get_db_session()
    await generator.__anext__()
    with pytest.raises(DBAPIError) as exc:
        await generator.athrow(error)

    assert exc.value is error
    assert factory.sessions[0].rolled_back is True
    assert factory.sessions[0].committed is False


@pytest.mark.asyncio
async def test_database_exception_handler_maps_contention_to_conflict() -> None:
    response = await database_exception_handler(None, db_error("55P03"))

    assert response.status_code == 409
    assert json.loads(response.body) == {
        "success": False,
        "message": LOCK_CONTENTION_MESSAGE,
        "code": "conflict",
        "data": None,
    }


@pytest.mark.asyncio
async def test_database_exception_handler_keeps_other_errors_internal() -> None:
    response = await database_exception_handler(None, db_error("23505"))

    assert response.status_code == 500
    assert json.loads(response.body)["code"] == "internal_error"


class DeadlockedSchedulingService:
    async def publish_slots(self, entries, actor):
        raise db_error("40P01")


@pytest_asyncio.fixture()
async def deadlocked_client() -> AsyncIterator[httpx.AsyncClient]:
    app.dependency_overrides[get_scheduling_service] = DeadlockedSchedulingService
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url=f"http://testserver{API_PREFIX}") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_deadlocked_publish_returns_retryable_conflict(deadlocked_client: httpx.AsyncClient) -> None:
    response = await deadlocked_client.put(
        "/availability",
        headers={"Authorization": f"Bearer {create_access_token('7', role='qari')}"},
        json={"slots": [{"date": "2024-06-01", "startTime": "10:00"}]},
    )

    assert response.status_code == 409
    assert response.json()["message"] == LOCK_CONTENTION_MESSAGE


def test_is_lock_contention_falls_back_to_driver_message() -> None:
    error = DBAPIError("SELECT 1", {}, Exception("ERROR: deadlock detected"))

    assert database_module.is_lock_contention(error) is True
