"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavedesk.common.constants import StaffRole
from leavedesk.config import settings
from leavedesk.database import Base, get_db
from leavedesk.leave.approval import Actor
from leavedesk.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leavedesk.common.audit  # noqa: F401
import leavedesk.leave.models  # noqa: F401
import leavedesk.org.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

from sqlalchemy.dialects.postgresql import INET, JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(INET, "sqlite")
def _inet_sqlite(element, compiler, **kw):
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


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
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
    """Reset rate limiter storage between tests."""
    from leavedesk.common.rate_limit import limiter

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

async def _seed_department(
    db: AsyncSession,
    *,
    name: str = "Computer Engineering",
    code: str = "CE",
):
    from leavedesk.org.models import Department

    dept = Department(id=uuid.uuid4(), name=name, code=code, is_active=True)
    db.add(dept)
    await db.flush()
    return dept


async def _seed_staff(
    db: AsyncSession,
    *,
    role: StaffRole = StaffRole.faculty,
    department_id: Optional[uuid.UUID] = None,
    first_name: str = "Test",
    last_name: str = "Staff",
    is_active: bool = True,
):
    from leavedesk.org.models import Staff

    code = uuid.uuid4().hex[:6].upper()
    staff = Staff(
        id=uuid.uuid4(),
        staff_code=f"ST-{code}",
        first_name=first_name,
        last_name=last_name,
        email=f"{role.value}.{code.lower()}@college.test",
        role=role,
        department_id=department_id,
        is_active=is_active,
    )
    db.add(staff)
    await db.flush()
    return staff


async def _seed_leave_type(
    db: AsyncSession,
    *,
    code: str = "CL",
    name: str = "Casual Leave",
    max_days_per_year: Decimal = Decimal("12"),
    default_allocation: Decimal = Decimal("12"),
    allow_half_day: bool = True,
    requires_approval: bool = True,
    applicable_roles: Optional[list[str]] = None,
    max_consecutive_days: Optional[int] = None,
    min_working_days: Optional[Decimal] = None,
    is_active: bool = True,
):
    from leavedesk.leave.models import LeaveType

    lt = LeaveType(
        id=uuid.uuid4(),
        code=code,
        name=name,
        max_days_per_year=max_days_per_year,
        default_allocation=default_allocation,
        allow_half_day=allow_half_day,
        requires_approval=requires_approval,
        applicable_roles=applicable_roles or [],
        max_consecutive_days=max_consecutive_days,
        min_working_days=min_working_days,
        is_active=is_active,
    )
    db.add(lt)
    await db.flush()
    return lt


async def _seed_balance(
    db: AsyncSession,
    *,
    staff_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    year: int = 2024,
    allocated: Decimal = Decimal("12"),
    used: Decimal = Decimal("0"),
):
    from leavedesk.leave.models import LeaveBalance

    bal = LeaveBalance(
        id=uuid.uuid4(),
        staff_id=staff_id,
        leave_type_id=leave_type_id,
        year=year,
        allocated=allocated,
        used=used,
        remaining=max(Decimal("0"), allocated - used),
    )
    db.add(bal)
    await db.flush()
    return bal


def actor_for(staff) -> Actor:
    return Actor.from_staff(staff)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    staff_id: uuid.UUID,
    expired: bool = False,
    secret: Optional[str] = None,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {"sub": str(staff_id), "type": "access", "exp": exp}
    return jwt.encode(
        payload, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM,
    )


def auth_header(staff_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(staff_id)}"}


# ── Scenario fixture ────────────────────────────────────────────────

@pytest.fixture
async def college(db) -> dict:
    """Two departments with faculty and HODs, a principal, an admin,
    and a casual-leave type with 12 days allocated to the faculty of 2024."""
    ce = await _seed_department(db, name="Computer Engineering", code="CE")
    me = await _seed_department(db, name="Mechanical Engineering", code="ME")

    faculty = await _seed_staff(db, role=StaffRole.faculty, department_id=ce.id, first_name="Asha")
    other_faculty = await _seed_staff(db, role=StaffRole.faculty, department_id=me.id, first_name="Ravi")
    hod = await _seed_staff(db, role=StaffRole.hod, department_id=ce.id, first_name="Meera")
    other_hod = await _seed_staff(db, role=StaffRole.hod, department_id=me.id, first_name="Kiran")
    principal = await _seed_staff(db, role=StaffRole.principal, first_name="Suresh")
    admin = await _seed_staff(db, role=StaffRole.admin, first_name="Office")

    casual = await _seed_leave_type(db)
    await _seed_balance(db, staff_id=faculty.id, leave_type_id=casual.id)
    await _seed_balance(db, staff_id=other_faculty.id, leave_type_id=casual.id)
    await _seed_balance(
        db, staff_id=hod.id, leave_type_id=casual.id, allocated=Decimal("10"),
    )
    await db.commit()

    return {
        "ce": ce,
        "me": me,
        "faculty": faculty,
        "other_faculty": other_faculty,
        "hod": hod,
        "other_hod": other_hod,
        "principal": principal,
        "admin": admin,
        "casual": casual,
    }
