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
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leaveflow.common.constants import LeaveTypeName, UserRole
from leaveflow.config import settings
from leaveflow.database import Base, get_db
from leaveflow.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leaveflow.common.audit  # noqa: F401
import leaveflow.directory.models  # noqa: F401
import leaveflow.leave.models  # noqa: F401

from leaveflow.directory.models import Department, DepartmentManager, User
from leaveflow.leave.models import LeaveBalance, LeaveType

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


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
    from leaveflow.common.rate_limit import limiter

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


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    """The factory bound to the per-test engine, for code that opens its own sessions."""
    return TestSessionFactory


# ── Model factories ─────────────────────────────────────────────────

# Default catalog: name → default_allocated_days
DEFAULT_CATALOG: dict[str, Decimal] = {
    LeaveTypeName.VACATION.value: Decimal("15"),
    LeaveTypeName.SICK.value: Decimal("10"),
    LeaveTypeName.EMERGENCY.value: Decimal("5"),
    LeaveTypeName.UNPAID.value: Decimal("0"),
}


async def seed_catalog(
    db: AsyncSession,
    catalog: Optional[dict[str, Decimal]] = None,
) -> dict[str, LeaveType]:
    """Insert leave types and return them keyed by name."""
    types: dict[str, LeaveType] = {}
    for name, days in (catalog if catalog is not None else DEFAULT_CATALOG).items():
        lt = LeaveType(id=uuid.uuid4(), name=name, default_allocated_days=days)
        db.add(lt)
        types[name] = lt
    await db.flush()
    return types


async def seed_user(
    db: AsyncSession,
    *,
    name: str = "Test User",
    role: UserRole = UserRole.USER,
    approver_id: Optional[uuid.UUID] = None,
    department_id: Optional[uuid.UUID] = None,
    is_active: bool = True,
) -> User:
    user = User(
        id=uuid.uuid4(),
        employee_code=f"LF-{uuid.uuid4().hex[:6].upper()}",
        name=name,
        email=f"{uuid.uuid4().hex[:8]}@leaveflow.test",
        role=role,
        approver_id=approver_id,
        department_id=department_id,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def seed_department(
    db: AsyncSession,
    *,
    name: str = "Engineering",
    manager_ids: tuple[uuid.UUID, ...] = (),
) -> Department:
    dept = Department(id=uuid.uuid4(), name=name)
    db.add(dept)
    await db.flush()
    for manager_id in manager_ids:
        db.add(DepartmentManager(department_id=dept.id, manager_id=manager_id))
    await db.flush()
    return dept


async def seed_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    year: int = 2026,
    allocated: Decimal = Decimal("10"),
    used: Decimal = Decimal("0"),
) -> LeaveBalance:
    bal = LeaveBalance(
        id=uuid.uuid4(),
        user_id=user_id,
        leave_type_id=leave_type_id,
        year=year,
        allocated_days=allocated,
        used_days=used,
    )
    db.add(bal)
    await db.flush()
    return bal


@pytest.fixture
async def org(db) -> dict:
    """A small org: HR, a manager, and an employee reporting to the manager.

    The employee holds 10 VACATION and 10 SICK days for 2026.
    """
    catalog = await seed_catalog(db)
    hr = await seed_user(db, name="Hannah HR", role=UserRole.HR)
    manager = await seed_user(db, name="Mona Manager", role=UserRole.MANAGER)
    employee = await seed_user(
        db, name="Eli Employee", approver_id=manager.id,
    )
    vacation = await seed_balance(
        db, employee.id, catalog["VACATION"].id, allocated=Decimal("10"),
    )
    sick = await seed_balance(
        db, employee.id, catalog["SICK"].id, allocated=Decimal("10"),
    )
    return {
        "catalog": catalog,
        "hr": hr,
        "manager": manager,
        "employee": employee,
        "vacation": vacation,
        "sick": sick,
    }


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    role: UserRole = UserRole.USER,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
