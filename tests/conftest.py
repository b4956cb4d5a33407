"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Iterable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hrpayroll.common.constants import ApprovalStatus, UserRole
from hrpayroll.config import settings
from hrpayroll.database import Base, get_db
from hrpayroll.main import create_app

# Import ALL model modules so every table is on Base.metadata
import hrpayroll.attendance.models  # noqa: F401
import hrpayroll.common.audit  # noqa: F401
import hrpayroll.leave.models  # noqa: F401
import hrpayroll.payroll.models  # noqa: F401

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from hrpayroll.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_attendance(
    *,
    employee_id: str = "CF-0001",
    day: date,
    status: Optional[str] = "Present",
) -> dict:
    return dict(
        id=uuid.uuid4(),
        employee_id=employee_id,
        date=day,
        status=status,
        source="sync",
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


def _make_leave(
    *,
    employee_id: str = "CF-0001",
    leave_type: str = "Paid Leave",
    start_date: date,
    end_date: date,
    hr_approval: str = ApprovalStatus.approved.value,
    manager_approval: str = ApprovalStatus.approved.value,
    created_at: Optional[datetime] = None,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        hr_approval=hr_approval,
        manager_approval=manager_approval,
        created_at=created_at or datetime.now(timezone.utc),
    )


def _make_holiday(
    *,
    name: str = "Company Holiday",
    day: date,
    end_date: Optional[date] = None,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        name=name,
        date=day,
        end_date=end_date,
        created_at=datetime.now(timezone.utc),
    )


def month_days(year: int, month: int) -> list[date]:
    """Every date of a month, in order."""
    days = []
    day = date(year, month, 1)
    while day.month == month:
        days.append(day)
        day += timedelta(days=1)
    return days


async def seed_attendance(
    db: AsyncSession,
    employee_id: str,
    days: Iterable[date],
    status: Optional[str] = "Present",
) -> None:
    from hrpayroll.attendance.models import AttendanceRecord

    for day in days:
        db.add(AttendanceRecord(**_make_attendance(employee_id=employee_id, day=day, status=status)))
    await db.flush()


async def seed_leave(db: AsyncSession, **kwargs):
    from hrpayroll.leave.models import LeaveRequest

    leave = LeaveRequest(**_make_leave(**kwargs))
    db.add(leave)
    await db.flush()
    return leave


async def seed_holiday(db: AsyncSession, **kwargs):
    from hrpayroll.attendance.models import Holiday

    holiday = Holiday(**_make_holiday(**kwargs))
    db.add(holiday)
    await db.flush()
    return holiday


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    subject: str = "CF-ADMIN",
    role: UserRole = UserRole.hr_admin,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": subject,
        "role": role.value,
        "type": token_type,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(role: UserRole = UserRole.hr_admin, subject: str = "CF-ADMIN") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject, role)}"}


@pytest.fixture
def hr_headers() -> dict[str, str]:
    return auth_headers_for(UserRole.hr_admin)


@pytest.fixture
def manager_headers() -> dict[str, str]:
    return auth_headers_for(UserRole.manager, subject="CF-MGR")


@pytest.fixture
def employee_headers() -> dict[str, str]:
    return auth_headers_for(UserRole.employee, subject="CF-0001")
