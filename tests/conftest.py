"""Shared test fixtures — async DB, client, identities, tokens, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
SQLite ignores FOR UPDATE and has no exclusion constraints, so these tests
cover the application-level overlap check; the storage backstop lives in
the PostgreSQL migration.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

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

from hrms.auth.identity import Identity
from hrms.common.audit import audit_sink
from hrms.config import settings
from hrms.database import Base, get_db
from hrms.main import create_app

# Import ALL model modules so every table is registered on Base.metadata
import hrms.common.audit  # noqa: F401
import hrms.leave.models  # noqa: F401
import hrms.staff.models  # noqa: F401

from hrms.leave.models import TimeOffCategory, TimeOffRequest
from hrms.staff.models import StaffMember
from hrms.common.constants import DECIDED_STATUSES, ApprovalStatus


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
    from hrms.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
            audit_sink.publish_pending(session)
        except Exception:
            await session.rollback()
            audit_sink.discard_pending(session)
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
def session_factory() -> async_sessionmaker:
    """Factory on the test engine, for code that opens its own sessions.

    Test modules must take this fixture rather than import
    ``TestSessionFactory``: ``tests.conftest`` imported by name is a
    second copy of this module with its own, empty, in-memory database.
    """
    return TestSessionFactory


# ── Dates ───────────────────────────────────────────────────────────

def days_ahead(n: int) -> date:
    """A date *n* days from today; new requests may not start in the past."""
    return date.today() + timedelta(days=n)


# ── Model factories ─────────────────────────────────────────────────

ADMIN_USER_ID = 1
EMPLOYEE_USER_ID = 101
OTHER_USER_ID = 102


async def _seed_staff(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    full_name: str = "Test Employee",
    email: Optional[str] = None,
    is_active: bool = True,
) -> StaffMember:
    staff = StaffMember(
        user_id=user_id,
        full_name=full_name,
        email=email or f"user{user_id}@hrms.local",
        is_active=is_active,
    )
    db.add(staff)
    await db.flush()
    return staff


async def _seed_category(
    db: AsyncSession,
    *,
    title: str = "Annual",
    annual_quota: int = 20,
    is_paid: bool = True,
    is_active: bool = True,
) -> TimeOffCategory:
    category = TimeOffCategory(
        title=title,
        annual_quota=annual_quota,
        is_paid=is_paid,
        is_active=is_active,
        author_id=ADMIN_USER_ID,
    )
    db.add(category)
    await db.flush()
    return category


async def _seed_request(
    db: AsyncSession,
    *,
    staff_member_id: int,
    category_id: int,
    start_date: date,
    end_date: date,
    status: ApprovalStatus = ApprovalStatus.pending,
    reason: Optional[str] = None,
) -> TimeOffRequest:
    """Insert a request directly, bypassing validation (past dates allowed)."""
    leave_req = TimeOffRequest(
        staff_member_id=staff_member_id,
        time_off_category_id=category_id,
        request_date=date.today(),
        start_date=start_date,
        end_date=end_date,
        total_days=(end_date - start_date).days + 1,
        reason=reason,
        approval_status=status,
        author_id=EMPLOYEE_USER_ID,
    )
    if status in DECIDED_STATUSES:
        leave_req.approver_id = ADMIN_USER_ID
        leave_req.decided_at = datetime.now(timezone.utc)
    db.add(leave_req)
    await db.flush()
    return leave_req


@pytest.fixture
async def employee(db) -> StaffMember:
    return await _seed_staff(db, user_id=EMPLOYEE_USER_ID, full_name="Esha Employee")


@pytest.fixture
async def other_employee(db) -> StaffMember:
    return await _seed_staff(db, user_id=OTHER_USER_ID, full_name="Farid Fellow")


@pytest.fixture
async def annual(db) -> TimeOffCategory:
    return await _seed_category(db, title="Annual", annual_quota=20)


@pytest.fixture
def employee_identity(employee) -> Identity:
    return Identity(
        user_id=EMPLOYEE_USER_ID,
        staff_member_id=employee.id,
        roles=frozenset({"employee"}),
    )


@pytest.fixture
def other_identity(other_employee) -> Identity:
    return Identity(
        user_id=OTHER_USER_ID,
        staff_member_id=other_employee.id,
        roles=frozenset({"employee"}),
    )


@pytest.fixture
def admin_identity() -> Identity:
    return Identity(user_id=ADMIN_USER_ID, staff_member_id=None, roles=frozenset({"hr"}))


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: int,
    roles: Iterable[str] = ("employee",),
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(user_id),
        "roles": list(roles),
        "type": token_type,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def bearer(user_id: int, roles: Iterable[str] = ("employee",)) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, roles)}"}


@pytest.fixture
def employee_headers() -> dict[str, str]:
    return bearer(EMPLOYEE_USER_ID)


@pytest.fixture
def other_headers() -> dict[str, str]:
    return bearer(OTHER_USER_ID)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return bearer(ADMIN_USER_ID, roles=("Admin",))
