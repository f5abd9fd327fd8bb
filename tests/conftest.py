"""
Shared test fixtures.

Each test gets its own file-backed SQLite database (via aiosqlite) with no
connection pooling, so every ledger transaction runs on its own connection
and conditional updates really race the way they do on PostgreSQL.  The
production models are used unchanged; no Docker / PostgreSQL / Redis is
needed.
"""

from types import SimpleNamespace
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from ridehail.domain.entities import Location
from ridehail.domain.enums import DevicePlatform, DriverStatus, UserRole, UserStatus
from ridehail.infrastructure.database import Base
from ridehail.infrastructure.identity import JwtIdentityResolver
from ridehail.infrastructure.ledger import LedgerStore
from ridehail.infrastructure.models import DeviceTokenModel, DriverModel, UserModel
from ridehail.infrastructure.push_gateway import PushOutcome, PushStatus
from ridehail.services.container import Services, build_services

TEST_JWT_SECRET = "test-secret"

AIRPORT = Location("Terminal 2, Mumbai Airport", 19.0896, 72.8656)
ANDHERI = Location("Andheri West", 19.1364, 72.8296)


# ── Test doubles ──────────────────────────────────────────────────────


class StubPushGateway:
    """Records every send; succeeds unless told otherwise per token."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.outcomes: dict[str, PushOutcome] = {}
        self.error: Exception | None = None
        self.before_send = None

    async def send_to_tokens(self, tokens, title, body, data):
        self.calls.append({"tokens": list(tokens), "title": title, "body": body, "data": data})
        if self.before_send is not None:
            await self.before_send(tokens, data)
        if self.error is not None:
            raise self.error
        return {t: self.outcomes.get(t, PushOutcome(PushStatus.SUCCESS)) for t in tokens}


class RecordingEmergencyNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def notify(self, contact_name, contact_phone, user_name, alert) -> None:
        self.calls.append((contact_name, contact_phone, user_name, alert.id))


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables in a fresh database file, yield the engine, dispose."""
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ridehail.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 15},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> LedgerStore:
    return LedgerStore(session_factory, timeout=20, attempts=5, base_delay=0.01)


@pytest.fixture
def gateway() -> StubPushGateway:
    return StubPushGateway()


@pytest.fixture
def emergency_notifier() -> RecordingEmergencyNotifier:
    return RecordingEmergencyNotifier()


@pytest.fixture
def identity() -> JwtIdentityResolver:
    return JwtIdentityResolver(secret=TEST_JWT_SECRET)


@pytest.fixture
def services(session_factory, store, gateway, identity, emergency_notifier) -> Services:
    return build_services(
        session_factory,
        push_gateway=gateway,
        identity=identity,
        emergency_notifier=emergency_notifier,
        store=store,
    )


# ── Seed data ─────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def world(session_factory) -> SimpleNamespace:
    """
    Two passengers, three drivers (two available, one offline), two active
    admins and one suspended admin.  Everyone has one active device token
    ``tok-<email>``.
    """
    async with session_factory() as session:
        passenger = UserModel(
            name="Aarav Sharma",
            email="aarav@example.com",
            role=UserRole.PASSENGER,
            emergency_contact_name="Kavya Sharma",
            emergency_contact_phone="+919800000101",
        )
        other_passenger = UserModel(
            name="Rohan Mehta", email="rohan@example.com", role=UserRole.PASSENGER
        )
        driver = UserModel(name="Vikram Singh", email="vikram@example.com", role=UserRole.DRIVER)
        driver_b = UserModel(name="Ananya Reddy", email="ananya@example.com", role=UserRole.DRIVER)
        offline_driver = UserModel(
            name="Arjun Kumar", email="arjun@example.com", role=UserRole.DRIVER
        )
        admin = UserModel(name="Diya Iyer", email="diya@example.com", role=UserRole.ADMIN)
        admin_b = UserModel(name="Ops Desk", email="ops@example.com", role=UserRole.ADMIN)
        suspended_admin = UserModel(
            name="Old Admin",
            email="old@example.com",
            role=UserRole.ADMIN,
            status=UserStatus.SUSPENDED,
        )
        users = [
            passenger,
            other_passenger,
            driver,
            driver_b,
            offline_driver,
            admin,
            admin_b,
            suspended_admin,
        ]
        session.add_all(users)
        await session.flush()

        session.add_all(
            [
                DriverModel(user_id=driver.id, status=DriverStatus.AVAILABLE),
                DriverModel(user_id=driver_b.id, status=DriverStatus.AVAILABLE),
                DriverModel(user_id=offline_driver.id, status=DriverStatus.OFFLINE),
            ]
        )
        for u in users:
            session.add(
                DeviceTokenModel(
                    user_id=u.id,
                    token=f"tok-{u.email}",
                    platform=DevicePlatform.ANDROID,
                    is_active=True,
                )
            )
        await session.commit()

    return SimpleNamespace(
        passenger=passenger,
        other_passenger=other_passenger,
        driver=driver,
        driver_b=driver_b,
        offline_driver=offline_driver,
        admin=admin,
        admin_b=admin_b,
        suspended_admin=suspended_admin,
    )


# ── Helpers ───────────────────────────────────────────────────────────


async def count_rows(session_factory, model, *criteria) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(model).where(*criteria)
        )
        return result.scalar() or 0


async def fetch_all(session_factory, model, *criteria, order_by=()) -> list:
    async with session_factory() as session:
        stmt = select(model).where(*criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        result = await session.execute(stmt)
        return list(result.scalars().all())


async def fetch_one(session_factory, model, entity_id):
    async with session_factory() as session:
        return await session.get(model, entity_id)


async def trip_accepted(services, world):
    requested = await services.engine.request_trip(world.passenger.id, AIRPORT, ANDHERI, 120)
    accepted = await services.engine.accept_trip(world.driver.id, requested.entity.id)
    return accepted.entity


async def trip_in_progress(services, world):
    trip = await trip_accepted(services, world)
    started = await services.engine.start_trip(world.driver.id, trip.id)
    return started.entity
