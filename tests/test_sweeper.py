"""Maintenance sweep tests (mocked Redis, in-memory database)."""

from unittest.mock import AsyncMock, patch

import pytest

from src.domain.entities import Location, PassengerInfo, Place, SessionContext
from src.domain.enums import DriverStatus, Role, TripStatus
from src.infrastructure.models import DriverLocationModel, TripModel
from src.services.bookings import BookingService
from src.workers.sweeper import run_sweep_cycle
from tests.conftest import TOWN_LAT, TOWN_LNG


def _redis(lock_free: bool = True) -> AsyncMock:
    client = AsyncMock()
    client.set = AsyncMock(return_value=lock_free)
    client.eval = AsyncMock(return_value=1)
    return client


class TestSweep:
    @pytest.mark.asyncio
    async def test_cycle_expires_reconciles_and_prunes(
        self, session_factory, db_session, add_driver, clock
    ):
        trip = await BookingService(db_session, clock).create_booking(
            SessionContext("pax-1", Role.PASSENGER),
            PassengerInfo("pax-1"),
            Place("Market", Location(TOWN_LAT, TOWN_LNG)),
            Place("Pier", Location(13.90, 122.27)),
        )
        await add_driver("drv-stuck", status=DriverStatus.ON_RIDE)
        await add_driver("drv-idle", seen_minutes_ago=30)
        clock.advance(minutes=31)

        redis = _redis()
        with patch("src.workers.sweeper.get_redis", AsyncMock(return_value=redis)):
            result = await run_sweep_cycle(session_factory, clock)

        assert result.expired == 1
        assert result.released == 1
        assert result.occupied == 0
        assert result.pruned == 1
        redis.eval.assert_called_once()

        async with session_factory() as session:
            stored = await session.get(TripModel, trip.id)
            assert stored.status is TripStatus.CANCELLED
            stuck = await session.get(DriverLocationModel, "drv-stuck")
            assert stuck.status is DriverStatus.AVAILABLE
            assert await session.get(DriverLocationModel, "drv-idle") is None

    @pytest.mark.asyncio
    async def test_skips_when_lock_held(self, session_factory, clock):
        redis = _redis(lock_free=False)
        with patch("src.workers.sweeper.get_redis", AsyncMock(return_value=redis)):
            assert await run_sweep_cycle(session_factory, clock) is None
        redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_quiet_cycle(self, session_factory, clock):
        with patch("src.workers.sweeper.get_redis", AsyncMock(return_value=_redis())):
            result = await run_sweep_cycle(session_factory, clock)
        assert (result.expired, result.released, result.occupied, result.pruned) == (
            0,
            0,
            0,
            0,
        )
