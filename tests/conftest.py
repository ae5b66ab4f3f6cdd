"""
Shared test fixtures for the payroll ledger test suite.

Each test gets its own in-memory SQLite database (aiosqlite + StaticPool),
so no state or event loop crosses test boundaries.
"""

import os
import sys
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PAYROLL_TIMEZONE"] = "America/Guayaquil"
os.environ["CORS_ORIGINS"] = '["*"]'

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_ledger.api.v1.deps import get_db
from payroll_ledger.core.payroll_time import local_date_of, normalize_instant
from payroll_ledger.db.base import Base
from payroll_ledger.db import init_db  # noqa: F401  registers every model on Base.metadata
from payroll_ledger.main import app
from payroll_ledger.models.attendance import AttendanceSession
from payroll_ledger.models.staff import StaffMember


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct service calls in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app and the test database."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_db, None)


# ── Seed helpers ────────────────────────────────────────────────────
@pytest.fixture
def make_staff(db_session: AsyncSession):
    """Insert a staff member and return its id."""

    async def _make(
        full_name: str = "Ana Pérez",
        hourly_wage: str = "5.00",
        *,
        staff_id: Optional[int] = None,
        is_active: bool = True,
    ) -> int:
        staff = StaffMember(
            id=staff_id,
            full_name=full_name,
            hourly_wage=Decimal(hourly_wage),
            is_active=is_active,
        )
        db_session.add(staff)
        await db_session.commit()
        return staff.id

    return _make


@pytest.fixture
def make_session(db_session: AsyncSession):
    """Insert a raw attendance session (local wall-clock strings) and return its id."""

    async def _make(
        staff_id: int,
        checkin: str,
        checkout: Optional[str] = None,
        *,
        session_id: Optional[int] = None,
    ) -> int:
        checkin_at = normalize_instant(checkin)
        session = AttendanceSession(
            id=session_id,
            staff_id=staff_id,
            checkin_time=checkin_at,
            checkout_time=normalize_instant(checkout) if checkout else None,
            work_date=local_date_of(checkin_at),
        )
        db_session.add(session)
        await db_session.commit()
        return session.id

    return _make
