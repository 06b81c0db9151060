"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
Fixture rows are committed (not just flushed): the app's request session
shares the single in-memory connection and may roll back.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("SENDGRID_API_KEY", "")

import hashlib
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock

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

from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import ExpenseCategory, ExpenseStatus, UserRole
from expense_tracker.config import settings
from expense_tracker.database import Base, get_db
from expense_tracker.main import create_app
from expense_tracker.notifications.email import get_email_sender

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import expense_tracker.auth.models  # noqa: F401
import expense_tracker.reports.models  # noqa: F401
import expense_tracker.expenses.models  # noqa: F401
import expense_tracker.history.models  # noqa: F401
import expense_tracker.notifications.models  # noqa: F401

# ── SQLite compat: compile PG-specific types to TEXT ────────────────

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


# Register PG-compatible functions for SQLite
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
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from expense_tracker.common.rate_limit import limiter

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


# ── Email sender double ─────────────────────────────────────────────

@pytest.fixture
def email_sender() -> AsyncMock:
    """Records outgoing emails instead of calling SendGrid."""
    sender = AsyncMock()
    sender.send = AsyncMock(return_value=None)
    return sender


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(email_sender):
    """Create a fresh app instance with DB and email dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_email_sender] = lambda: email_sender
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
def session_factory():
    """Factory for independent sessions (sees rows committed by the app)."""
    return TestSessionFactory


# ── Model factories ─────────────────────────────────────────────────

def _make_user(
    *,
    email: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    role: UserRole = UserRole.USER,
    approver_id: Optional[uuid.UUID] = None,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        email=email or f"user.{uuid.uuid4().hex[:8]}@example.com",
        first_name=first_name,
        last_name=last_name,
        role=role,
        approver_id=approver_id,
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )


def _make_expense(
    user_id: uuid.UUID,
    *,
    amount: str | Decimal = "100.00",
    merchant: str = "Cafe Coffee Day",
    claim_reimbursement: Optional[bool] = True,
    report_id: Optional[int] = None,
    category: ExpenseCategory = ExpenseCategory.MEALS,
) -> dict:
    return dict(
        amount=Decimal(str(amount)),
        currency="INR",
        merchant=merchant,
        date=date(2026, 2, 10),
        description=f"Expense at {merchant}",
        category=category,
        receipt_urls=[],
        claim_reimbursement=claim_reimbursement,
        status=ExpenseStatus.REPORTED if report_id else ExpenseStatus.UNREPORTED,
        user_id=user_id,
        report_id=report_id,
    )


def actor_for(user: dict) -> Actor:
    return Actor(
        id=user["id"],
        role=user["role"],
        email=user["email"],
        name=f"{user['first_name']} {user['last_name']}".strip(),
    )


async def insert_user(db: AsyncSession, **kwargs) -> dict:
    from expense_tracker.auth.models import User

    data = _make_user(**kwargs)
    db.add(User(**data))
    await db.commit()
    return data


async def insert_expense(db: AsyncSession, user_id: uuid.UUID, **kwargs):
    from expense_tracker.expenses.models import Expense

    expense = Expense(**_make_expense(user_id, **kwargs))
    db.add(expense)
    await db.commit()
    return expense


@pytest.fixture
async def approver_user(db) -> dict:
    """An admin who is the designated approver of ``test_user``."""
    return await insert_user(
        db, email="approver@example.com", first_name="Asha", last_name="Approver",
        role=UserRole.ADMIN,
    )


@pytest.fixture
async def test_user(db, approver_user) -> dict:
    return await insert_user(
        db, email="test.user@example.com", approver_id=approver_user["id"],
    )


@pytest.fixture
async def admin_user(db) -> dict:
    return await insert_user(
        db, email="admin@example.com", first_name="Admin", last_name="", role=UserRole.ADMIN,
    )


@pytest.fixture
def user_actor(test_user) -> Actor:
    return actor_for(test_user)


@pytest.fixture
def admin_actor(admin_user) -> Actor:
    return actor_for(admin_user)


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    user_id: uuid.UUID,
    expired: bool = False,
    token_type: str = "access",
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


async def persist_session(db: AsyncSession, user_id: uuid.UUID, token: str) -> None:
    from expense_tracker.auth.models import UserSession

    db.add(UserSession(
        id=uuid.uuid4(),
        user_id=user_id,
        token_hash=hashlib.sha256(token.encode()).hexdigest(),
        expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS),
        is_revoked=False,
        created_at=datetime.now(timezone.utc),
    ))
    await db.commit()


async def headers_for(db: AsyncSession, user_id: uuid.UUID) -> dict[str, str]:
    """Bearer auth headers with a valid session persisted in the DB."""
    token = create_access_token(user_id)
    await persist_session(db, user_id, token)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def auth_headers(db, test_user) -> dict[str, str]:
    return await headers_for(db, test_user["id"])


@pytest.fixture
async def admin_headers(db, admin_user) -> dict[str, str]:
    return await headers_for(db, admin_user["id"])


@pytest.fixture
async def approver_headers(db, approver_user) -> dict[str, str]:
    return await headers_for(db, approver_user["id"])
