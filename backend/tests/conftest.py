"""
Pytest fixtures for test database, client, clock and authentication.

Each test gets a fresh schema. By default that is an in-memory SQLite
database; set TEST_DATABASE_URL to run against PostgreSQL instead.
"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from attendease.main import app
from attendease.db.base import Base
from attendease.db.session import get_db
from attendease.core.clock import FrozenClock, get_clock
from attendease.core.security import create_access_token, hash_password
from attendease.models.booking import Booking, STATUS_ACTIVE
from attendease.models.seat import Seat
from attendease.models.user import User, ROLE_ADMIN, ROLE_STUDENT

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")

# Monday morning, well clear of any real "now"
NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, days: int = 0) -> datetime:
    """A time on the frozen test day."""
    return NOW.replace(hour=hour, minute=minute) + timedelta(days=days)


def make_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        return create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(TEST_DATABASE_URL)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    engine = make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """
    Independent sessions on separate connections, for racing two requests.
    Uses a SQLite file (the in-memory database is a single shared connection)
    unless TEST_DATABASE_URL points elsewhere. SQLite transactions take the
    write lock up front, so a second writer waits instead of failing with
    "database is locked" halfway through.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}", connect_args={"timeout": 30})

        @event.listens_for(engine.sync_engine, "connect")
        def _no_implicit_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, clock: FrozenClock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client sharing the test session and the frozen clock."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db: AsyncSession, name: str, email: str, phone: str, role: str = ROLE_STUDENT) -> User:
    user = User(
        name=name,
        email=email,
        phone=phone,
        hashed_password=hash_password("testpassword123"),
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def headers_for(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user_id)})}"}


@pytest_asyncio.fixture
async def student(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Test Student", "student@example.com", "9000000001")


@pytest_asyncio.fixture
async def other_student(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Other Student", "other@example.com", "9000000002")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "Library Admin", "admin@example.com", "9000000009", role=ROLE_ADMIN)


@pytest.fixture
def auth_headers(student: User) -> dict:
    return headers_for(student.id)


@pytest.fixture
def other_headers(other_student: User) -> dict:
    return headers_for(other_student.id)


@pytest.fixture
def admin_headers(admin: User) -> dict:
    return headers_for(admin.id)


async def _create_seat(db: AsyncSession, seat_number: str, floor: int = 1, section: str = "A", **kwargs) -> Seat:
    seat = Seat(seat_number=seat_number, floor=floor, section=section, **kwargs)
    db.add(seat)
    await db.commit()
    await db.refresh(seat)
    return seat


@pytest_asyncio.fixture
async def seat(db_session: AsyncSession) -> Seat:
    return await _create_seat(db_session, "A-101")


@pytest_asyncio.fixture
async def second_seat(db_session: AsyncSession) -> Seat:
    return await _create_seat(db_session, "B-201", floor=2, section="B", seat_type="window")


@pytest_asyncio.fixture
async def inactive_seat(db_session: AsyncSession) -> Seat:
    return await _create_seat(db_session, "C-301", floor=3, section="C", is_active=False)


async def insert_booking(
    db: AsyncSession,
    user_id: int,
    seat_id: int,
    start_time: datetime,
    end_time: datetime,
    status: str = STATUS_ACTIVE,
    **kwargs,
) -> Booking:
    """Insert a booking row directly, bypassing the creation rules."""
    booking = Booking(
        user_id=user_id,
        seat_id=seat_id,
        start_time=start_time,
        end_time=end_time,
        status=status,
        **kwargs,
    )
    db.add(booking)
    await db.commit()
    await db.refresh(booking)
    return booking
