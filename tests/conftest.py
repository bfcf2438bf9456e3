"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) built from the production
metadata, so tests run without Docker / PostgreSQL / Redis.  A fresh
database per test; ``StaticPool`` keeps every session on the same
in-memory connection.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.domain.enums import DriverStatus
from src.domain.matching import location_cell
from src.infrastructure.database import Base
from src.infrastructure.models import DriverLocationModel, DriverModel

# Lopez, Quezon town proper
TOWN_LAT, TOWN_LNG = 13.8844, 122.2603

# 10:00 in Manila: daytime tariff
MORNING = datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = MORNING):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables on a private in-memory database, then drop it."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_driver(db_session: AsyncSession, clock: FrozenClock):
    """Insert a driver profile plus a registry entry heard from just now."""

    async def _add(
        driver_id: str,
        lat: float = TOWN_LAT,
        lng: float = TOWN_LNG,
        *,
        status: DriverStatus = DriverStatus.AVAILABLE,
        registered_days_ago: int = 400,
        seen_minutes_ago: float = 0,
    ) -> DriverLocationModel:
        db_session.add(
            DriverModel(
                id=driver_id,
                full_name=f"Driver {driver_id}",
                plate_number=f"LPZ-{driver_id[-3:]}",
                registered_at=clock() - timedelta(days=registered_days_ago),
            )
        )
        entry = DriverLocationModel(
            driver_id=driver_id,
            driver_name=f"Driver {driver_id}",
            latitude=lat,
            longitude=lng,
            h3_cell=location_cell(lat, lng),
            is_online=status is not DriverStatus.OFFLINE,
            status=status,
            last_updated=clock() - timedelta(minutes=seen_minutes_ago),
        )
        db_session.add(entry)
        await db_session.commit()
        return entry

    return _add
