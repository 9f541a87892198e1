"""
Shared test fixtures for the attendance correction test suite.

Every test gets its own in-memory SQLite database (aiosqlite + StaticPool)
so the partial unique indexes are exercised for real.
"""

import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import AsyncGenerator

import pytest

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production-use-0123456789abcdef"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from clockfix.api.v1.deps import get_current_actor, get_session_factory
from clockfix.db.base import Base
from clockfix.db.session import build_engine, make_session_factory
from clockfix.main import app
from clockfix.models.attendance import AttendanceRecord
from clockfix.models.employee import ROLE_ADMIN, Employee
from clockfix.services.aggregator import AttendanceStatisticsService
from clockfix.services.correction_query import WorkflowQueryService
from clockfix.services.correction_workflow import CorrectionWorkflow
from clockfix.services.identity import Actor


@dataclass(frozen=True)
class Staff:
    admin: Actor
    alice: Actor
    bob: Actor


# ── Database ────────────────────────────────────────────────────────
@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    test_engine = build_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def staff(session_factory) -> Staff:
    """One admin and two employees."""
    async with session_factory() as session, session.begin():
        admin = Employee(email="admin@example.com", first_name="Ada", last_name="Admin", role=ROLE_ADMIN)
        alice = Employee(email="alice@example.com", first_name="Alice", last_name="Tanaka")
        bob = Employee(email="bob@example.com", first_name="Bob", last_name="Suzuki")
        session.add_all([admin, alice, bob])
        await session.flush()
        ids = admin.id, alice.id, bob.id

    return Staff(
        admin=Actor(employee_id=ids[0], is_admin=True),
        alice=Actor(employee_id=ids[1]),
        bob=Actor(employee_id=ids[2]),
    )


@pytest.fixture
def make_record(session_factory):
    """Insert an AttendanceRecord and return its id."""

    async def _make(
        employee_id: int,
        work_date: date,
        in_time: datetime | None = None,
        out_time: datetime | None = None,
        break_start_time: datetime | None = None,
        break_end_time: datetime | None = None,
        is_night_shift: bool | None = None,
    ) -> int:
        async with session_factory() as session, session.begin():
            record = AttendanceRecord(
                employee_id=employee_id,
                work_date=work_date,
                in_time=in_time,
                out_time=out_time,
                break_start_time=break_start_time,
                break_end_time=break_end_time,
                is_night_shift=is_night_shift,
            )
            session.add(record)
            await session.flush()
            return record.id

    return _make


# ── Services ────────────────────────────────────────────────────────
@pytest.fixture
def workflow(session_factory) -> CorrectionWorkflow:
    return CorrectionWorkflow(session_factory)


@pytest.fixture
def query(session_factory) -> WorkflowQueryService:
    return WorkflowQueryService(session_factory)


@pytest.fixture
def statistics(session_factory) -> AttendanceStatisticsService:
    return AttendanceStatisticsService(session_factory)


# ── HTTP ────────────────────────────────────────────────────────────
@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app and the per-test database."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def login_as():
    """Make every request act as the given actor, bypassing JWT auth."""

    def _login(actor: Actor | None) -> None:
        app.dependency_overrides[get_current_actor] = lambda: actor

    return _login
