"""
Booking service tests against the in-memory database.

Covers creation (server-side quote, validation, geocoding fill-in), the
guarded update pipeline end to end, the accept race, search expiry and
post-trip ratings.
"""

from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest

from src.domain.entities import Location, PassengerInfo, Place, SessionContext, TripChanges
from src.domain.enums import (
    NO_DRIVER_FOUND,
    DiscountType,
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    RideKind,
    Role,
    SafetyBadge,
    TripStatus,
)
from src.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from src.domain.pricing import FareEstimate
from src.infrastructure.database import commit
from src.infrastructure.geocoding import GeocodingError
from src.infrastructure.models import DriverLocationModel, SafetyRecordModel
from src.services.bookings import BookingService
from tests.conftest import TOWN_LAT, TOWN_LNG

PAX = SessionContext("pax-1", Role.PASSENGER)
PAX_2 = SessionContext("pax-2", Role.PASSENGER)
DRV = SessionContext("drv-001", Role.DRIVER)
DRV_2 = SessionContext("drv-002", Role.DRIVER)
ADMIN = SessionContext("ops", Role.ADMIN)

PICKUP = Place("Lopez public market", Location(TOWN_LAT, TOWN_LNG))
DROPOFF = Place("Barangay Talolong", Location(13.9200, 122.2800))


class FakeGeocoder:
    def __init__(self, location: Optional[Location] = None, label: str = "", fail=False):
        self.location = location
        self.label = label
        self.fail = fail
        self.calls: list[str] = []

    async def forward(self, text):
        self.calls.append(f"forward:{text}")
        if self.fail:
            raise GeocodingError("service down")
        return self.location

    async def reverse(self, location):
        self.calls.append("reverse")
        if self.fail:
            raise GeocodingError("service down")
        return self.label


@pytest.fixture
def service(db_session, clock):
    return BookingService(db_session, clock)


async def _book(service, ctx=PAX, **kwargs):
    kwargs.setdefault("distance_km", 5)
    return await service.create_booking(
        ctx, PassengerInfo(ctx.user_id, "Maria"), PICKUP, DROPOFF, **kwargs
    )


async def _drive_to_completion(service, trip_id, driver=DRV):
    await service.update_trip(trip_id, TripChanges(status=TripStatus.ACCEPTED), driver)
    await service.update_trip(trip_id, TripChanges(status=TripStatus.ARRIVED), driver)
    await service.update_trip(
        trip_id,
        TripChanges(status=TripStatus.IN_PROGRESS, pickup_confirmed=True),
        driver,
    )
    return await service.update_trip(
        trip_id,
        TripChanges(
            status=TripStatus.COMPLETED,
            payment_method=PaymentMethod.CASH,
            payment_status=PaymentStatus.COMPLETED,
        ),
        driver,
    )


# ── Creation ──────────────────────────────────────────────────────────


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_new_trip_is_searching_with_quoted_fare(self, service, clock):
        trip = await _book(service)

        assert trip.id.startswith("trip_")
        assert trip.status is TripStatus.SEARCHING
        assert trip.searching_at == clock()
        assert trip.fare_min == Decimal("83")
        assert trip.fare_max == Decimal("92")
        assert trip.zone_name == "Lopez"
        assert trip.discount_type is DiscountType.NONE
        assert trip.driver_id is None

    @pytest.mark.asyncio
    async def test_trip_is_written_searching_in_one_commit(self, service):
        commits = AsyncMock(wraps=commit)
        with patch("src.services.bookings.commit", commits):
            trip = await _book(service)

        assert commits.await_count == 1
        assert trip.status is TripStatus.SEARCHING
        assert trip.searching_at == trip.created_at

    @pytest.mark.asyncio
    async def test_failed_commit_leaves_no_open_trip(self, service, db_session):
        down = AsyncMock(side_effect=PersistenceError("database unavailable"))
        with patch("src.services.bookings.commit", down):
            with pytest.raises(PersistenceError):
                await _book(service)
        await db_session.rollback()

        assert await service.get_active_trip(PAX) is None
        trip = await _book(service)
        assert trip.status is TripStatus.SEARCHING

    @pytest.mark.asyncio
    async def test_supplied_fare_is_stored_as_given(self, service):
        given = FareEstimate(
            min=Decimal("50"),
            max=Decimal("55"),
            base=Decimal("52.50"),
            discount_amount=Decimal("0"),
            discount_type=DiscountType.NONE,
        )
        trip = await _book(service, fare=given)
        assert trip.fare_min == Decimal("50")
        assert trip.fare_max == Decimal("55")

    @pytest.mark.asyncio
    async def test_errand_with_senior_discount(self, service):
        trip = await _book(service, ride_kind=RideKind.ERRAND, is_senior_discount=True)
        assert trip.ride_kind is RideKind.ERRAND
        assert trip.discount_type is DiscountType.SENIOR
        assert trip.fare_min == Decimal("80")
        assert trip.fare_max == Decimal("88")

    @pytest.mark.asyncio
    async def test_distance_defaults_to_straight_line(self, service):
        trip = await service.create_booking(
            PAX, PassengerInfo("pax-1"), PICKUP, DROPOFF
        )
        assert 4.0 < trip.distance_km < 5.0

    @pytest.mark.asyncio
    async def test_passenger_cannot_book_for_someone_else(self, service):
        with pytest.raises(ValidationError):
            await service.create_booking(
                PAX, PassengerInfo("pax-2"), PICKUP, DROPOFF, distance_km=3
            )

    @pytest.mark.asyncio
    async def test_driver_cannot_book(self, service):
        with pytest.raises(ValidationError):
            await service.create_booking(
                DRV, PassengerInfo("drv-001"), PICKUP, DROPOFF, distance_km=3
            )

    @pytest.mark.asyncio
    async def test_admin_books_on_behalf(self, service):
        trip = await service.create_booking(
            ADMIN, PassengerInfo("pax-9"), PICKUP, DROPOFF, distance_km=3
        )
        assert trip.passenger_id == "pax-9"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("distance", [-1, float("nan"), float("inf"), 1e30])
    async def test_unusable_distance_rejected(self, service, distance):
        with pytest.raises(ValidationError, match="distance"):
            await _book(service, distance_km=distance)

    @pytest.mark.asyncio
    async def test_unbounded_distance_rejected_with_supplied_fare(self, service):
        given = FareEstimate(
            min=Decimal("50"),
            max=Decimal("55"),
            base=Decimal("52.50"),
            discount_amount=Decimal("0"),
            discount_type=DiscountType.NONE,
        )
        with pytest.raises(ValidationError, match="distance"):
            await _book(service, distance_km=float("inf"), fare=given)

    @pytest.mark.asyncio
    async def test_out_of_range_pickup_rejected(self, service):
        bad = Place("Nowhere", Location(95.0, 122.0))
        with pytest.raises(ValidationError):
            await service.create_booking(
                PAX, PassengerInfo("pax-1"), bad, DROPOFF, distance_km=3
            )

    @pytest.mark.asyncio
    async def test_blank_address_rejected(self, service):
        blank = Place("  ", Location(TOWN_LAT, TOWN_LNG))
        with pytest.raises(ValidationError):
            await service.create_booking(
                PAX, PassengerInfo("pax-1"), blank, DROPOFF, distance_km=3
            )

    @pytest.mark.asyncio
    async def test_dropoff_without_coordinates_needs_distance(self, service):
        with pytest.raises(ValidationError, match="distance"):
            await service.create_booking(
                PAX, PassengerInfo("pax-1"), PICKUP, Place("Pier")
            )

    @pytest.mark.asyncio
    async def test_one_open_trip_per_passenger(self, service):
        await _book(service)
        with pytest.raises(ValidationError, match="already has trip"):
            await _book(service)

    @pytest.mark.asyncio
    async def test_expired_search_does_not_block_new_booking(self, service, clock):
        first = await _book(service)
        clock.advance(seconds=90)

        second = await _book(service)
        assert second.id != first.id
        assert (await service.get_trip(first.id)).status is TripStatus.CANCELLED


class TestGeocodingFillIn:
    @pytest.mark.asyncio
    async def test_typed_address_gets_coordinates(self, db_session, clock):
        geocoder = FakeGeocoder(location=Location(13.8850, 122.2610))
        service = BookingService(db_session, clock, geocoder)

        trip = await service.create_booking(
            PAX, PassengerInfo("pax-1"), Place("Lopez church"), DROPOFF, distance_km=2
        )
        assert trip.pickup_lat == 13.8850
        assert trip.pickup_lng == 122.2610
        assert geocoder.calls == ["forward:Lopez church"]

    @pytest.mark.asyncio
    async def test_dropped_pin_gets_label(self, db_session, clock):
        geocoder = FakeGeocoder(label="Talolong, Lopez, Quezon")
        service = BookingService(db_session, clock, geocoder)

        pin = Place("", Location(13.9200, 122.2800))
        trip = await service.create_booking(
            PAX, PassengerInfo("pax-1"), PICKUP, pin, distance_km=2
        )
        assert trip.dropoff_text == "Talolong, Lopez, Quezon"

    @pytest.mark.asyncio
    async def test_geocoder_failure_leaves_pickup_unresolved(self, db_session, clock):
        service = BookingService(db_session, clock, FakeGeocoder(fail=True))
        with pytest.raises(ValidationError, match="coordinates are required"):
            await service.create_booking(
                PAX, PassengerInfo("pax-1"), Place("Lopez church"), DROPOFF, distance_km=2
            )


# ── Lifecycle ─────────────────────────────────────────────────────────


class TestTripFlow:
    @pytest.mark.asyncio
    async def test_full_flow_frees_driver_and_refreshes_safety(
        self, service, add_driver, db_session
    ):
        entry = await add_driver("drv-001")
        trip = await _book(service)

        accepted = await service.update_trip(
            trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV
        )
        assert accepted.driver_id == "drv-001"
        assert entry.status is DriverStatus.ON_RIDE

        done = await _drive_to_completion(service, trip.id)
        assert done.status is TripStatus.COMPLETED
        assert done.completed_at is not None
        assert entry.status is DriverStatus.AVAILABLE
        assert entry.total_rides == 1

        cached = await db_session.get(SafetyRecordModel, "drv-001")
        assert cached.total_rides == 1
        # still unrated
        assert cached.badge is SafetyBadge.RED

    @pytest.mark.asyncio
    async def test_arrived_twice_is_idempotent(self, service, add_driver):
        await add_driver("drv-001")
        trip = await _book(service)
        await service.update_trip(trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV)

        first = await service.update_trip(
            trip.id, TripChanges(status=TripStatus.ARRIVED), DRV
        )
        arrived_at = first.arrived_at
        second = await service.update_trip(
            trip.id, TripChanges(status=TripStatus.ARRIVED), DRV
        )
        assert second.status is TripStatus.ARRIVED
        assert second.arrived_at == arrived_at

    @pytest.mark.asyncio
    async def test_cancel_releases_driver(self, service, add_driver):
        entry = await add_driver("drv-001")
        trip = await _book(service)
        await service.update_trip(trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV)
        assert entry.status is DriverStatus.ON_RIDE

        cancelled = await service.update_trip(
            trip.id,
            TripChanges(status=TripStatus.CANCELLED, cancellation_reason="too slow"),
            PAX,
        )
        assert cancelled.cancelled_by is Role.PASSENGER
        assert cancelled.cancellation_reason == "too slow"
        assert entry.status is DriverStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_skipping_states_rejected(self, service, add_driver):
        await add_driver("drv-001")
        trip = await _book(service)
        await service.update_trip(trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV)

        with pytest.raises(InvalidTransitionError):
            await service.update_trip(
                trip.id, TripChanges(status=TripStatus.COMPLETED), DRV
            )
        assert (await service.get_trip(trip.id)).status is TripStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_unknown_trip(self, service):
        with pytest.raises(NotFoundError):
            await service.update_trip(
                "trip_missing", TripChanges(status=TripStatus.CANCELLED), PAX
            )

    @pytest.mark.asyncio
    async def test_accept_without_registry_entry_still_succeeds(self, service):
        trip = await _book(service)
        accepted = await service.update_trip(
            trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV
        )
        assert accepted.status is TripStatus.ACCEPTED


class TestAcceptRace:
    @pytest.mark.asyncio
    async def test_second_accept_rejected(self, service, add_driver):
        await add_driver("drv-001")
        await add_driver("drv-002", 13.8850, 122.2610)
        trip = await _book(service)

        await service.update_trip(trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV)
        with pytest.raises(InvalidTransitionError):
            await service.update_trip(
                trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV_2
            )
        assert (await service.get_trip(trip.id)).driver_id == "drv-001"

    @pytest.mark.asyncio
    async def test_lost_compare_and_set_is_rejected(self, service, add_driver, clock):
        await add_driver("drv-001")
        await add_driver("drv-002", 13.8850, 122.2610)
        trip = await _book(service)

        # drv-001 wins behind this session's back; the loaded row still says searching
        won = await service.trips.apply(
            trip.id,
            TripStatus.SEARCHING,
            {"status": TripStatus.ACCEPTED, "driver_id": "drv-001", "accepted_at": clock()},
        )
        assert won
        await service.session.commit()
        assert trip.status is TripStatus.SEARCHING

        with pytest.raises(InvalidTransitionError):
            await service.update_trip(
                trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV_2
            )
        assert trip.status is TripStatus.ACCEPTED
        assert trip.driver_id == "drv-001"

    @pytest.mark.asyncio
    async def test_busy_driver_cannot_accept_another_trip(self, service, add_driver):
        await add_driver("drv-001")
        first = await _book(service, PAX)
        second = await _book(service, PAX_2)

        await service.update_trip(first.id, TripChanges(status=TripStatus.ACCEPTED), DRV)
        with pytest.raises(InvalidTransitionError, match="already on trip"):
            await service.update_trip(
                second.id, TripChanges(status=TripStatus.ACCEPTED), DRV
            )


# ── Search timeout ────────────────────────────────────────────────────


class TestSearchTimeout:
    @pytest.mark.asyncio
    async def test_read_after_timeout_cancels(self, service, clock):
        trip = await _book(service)
        clock.advance(seconds=89)
        assert (await service.get_trip(trip.id)).status is TripStatus.SEARCHING

        clock.advance(seconds=1)
        expired = await service.get_trip(trip.id)
        assert expired.status is TripStatus.CANCELLED
        assert expired.cancelled_by is Role.SYSTEM
        assert expired.cancellation_reason == NO_DRIVER_FOUND

    @pytest.mark.asyncio
    async def test_accept_after_timeout_rejected(self, service, clock):
        trip = await _book(service)
        clock.advance(seconds=120)
        with pytest.raises(InvalidTransitionError):
            await service.update_trip(
                trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV
            )

    @pytest.mark.asyncio
    async def test_sweep_expires_stale_searches(self, service, clock):
        await _book(service, PAX)
        await _book(service, PAX_2)
        clock.advance(seconds=91)

        assert await service.expire_stale_searches() == 2
        assert await service.expire_stale_searches() == 0

    @pytest.mark.asyncio
    async def test_active_trip_gone_after_timeout(self, service, clock):
        await _book(service)
        assert await service.get_active_trip(PAX) is not None
        clock.advance(seconds=90)
        assert await service.get_active_trip(PAX) is None


# ── Reads ─────────────────────────────────────────────────────────────


class TestReads:
    @pytest.mark.asyncio
    async def test_other_passenger_cannot_see_trip(self, service):
        trip = await _book(service)
        with pytest.raises(NotFoundError):
            await service.get_trip(trip.id, PAX_2)

    @pytest.mark.asyncio
    async def test_driver_sees_open_trip(self, service):
        trip = await _book(service)
        assert (await service.get_trip(trip.id, DRV)).id == trip.id

    @pytest.mark.asyncio
    async def test_open_bookings_put_preselected_first(self, service, clock):
        plain = await _book(service, PAX)
        clock.advance(seconds=10)
        chosen = await _book(service, PAX_2, preferred_driver_id="drv-001")

        mine = await service.list_open_bookings(DRV)
        assert [t.id for t in mine] == [chosen.id, plain.id]

        theirs = await service.list_open_bookings(DRV_2)
        assert [t.id for t in theirs] == [plain.id, chosen.id]

    @pytest.mark.asyncio
    async def test_passenger_cannot_list_open_bookings(self, service):
        with pytest.raises(ValidationError):
            await service.list_open_bookings(PAX)

    @pytest.mark.asyncio
    async def test_list_trips_for_participant(self, service, add_driver):
        await add_driver("drv-001")
        trip = await _book(service)
        await service.update_trip(trip.id, TripChanges(status=TripStatus.ACCEPTED), DRV)

        assert [t.id for t in await service.list_trips(PAX)] == [trip.id]
        assert [t.id for t in await service.list_trips(DRV)] == [trip.id]
        assert await service.list_trips(PAX_2) == []


# ── Ratings ───────────────────────────────────────────────────────────


class TestRating:
    @pytest.mark.asyncio
    async def test_passenger_rating_feeds_safety(self, service, add_driver, db_session):
        entry = await add_driver("drv-001")
        trip = await _book(service)
        await _drive_to_completion(service, trip.id)

        rated = await service.rate_trip(trip.id, PAX, 4, "smooth ride")
        assert rated.rating_for_driver == 4
        assert rated.feedback_for_driver == "smooth ride"
        assert entry.rating == 4.0

        cached = await db_session.get(SafetyRecordModel, "drv-001")
        assert cached.average_rating == 4.0
        assert cached.badge is SafetyBadge.YELLOW

    @pytest.mark.asyncio
    async def test_driver_rates_passenger(self, service, add_driver):
        await add_driver("drv-001")
        trip = await _book(service)
        await _drive_to_completion(service, trip.id)

        rated = await service.rate_trip(trip.id, DRV, 5)
        assert rated.rating_for_passenger == 5
        assert rated.rating_for_driver is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6, 4.5])
    async def test_rating_out_of_range(self, service, rating):
        trip = await _book(service)
        with pytest.raises(ValidationError):
            await service.rate_trip(trip.id, PAX, rating)

    @pytest.mark.asyncio
    async def test_unfinished_trip_cannot_be_rated(self, service):
        trip = await _book(service)
        with pytest.raises(InvalidTransitionError):
            await service.rate_trip(trip.id, PAX, 5)

    @pytest.mark.asyncio
    async def test_completion_without_profile_or_registry_entry(
        self, service, db_session
    ):
        trip = await _book(service)
        done = await _drive_to_completion(service, trip.id)
        assert done.status is TripStatus.COMPLETED
        assert await db_session.get(DriverLocationModel, "drv-001") is None
        assert await db_session.get(SafetyRecordModel, "drv-001") is None
