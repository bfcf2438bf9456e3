"""Incident / complaint reporting and safety record refresh."""

from datetime import datetime, timedelta

import pytest

from src.domain.enums import (
    ComplaintType,
    IncidentSeverity,
    IncidentType,
    SafetyBadge,
    TripStatus,
)
from src.domain.errors import NotFoundError, ValidationError
from src.infrastructure.models import SafetyRecordModel, TripModel
from src.services.safety import SafetyService
from tests.conftest import TOWN_LAT, TOWN_LNG


@pytest.fixture
def service(db_session, clock):
    return SafetyService(db_session, clock)


def _rated_trip(trip_id: str, driver_id: str, rating: int, clock) -> TripModel:
    return TripModel(
        id=trip_id,
        passenger_id="pax-1",
        driver_id=driver_id,
        pickup_text="Market",
        pickup_lat=TOWN_LAT,
        pickup_lng=TOWN_LNG,
        dropoff_text="Pier",
        distance_km=2.0,
        fare_min=45,
        fare_max=50,
        fare_base=50,
        discount_amount=0,
        status=TripStatus.COMPLETED,
        created_at=clock() - timedelta(days=40),
        completed_at=clock() - timedelta(days=40),
        rating_for_driver=rating,
    )


class TestRecord:
    @pytest.mark.asyncio
    async def test_unknown_driver(self, service):
        with pytest.raises(NotFoundError):
            await service.get_driver_safety_record("drv-404")

    @pytest.mark.asyncio
    async def test_new_driver_without_ratings_is_red(self, service, add_driver, clock):
        await add_driver("drv-001", registered_days_ago=3)
        record = await service.get_driver_safety_record("drv-001")

        assert record.badge is SafetyBadge.RED
        assert record.total_rides == 0
        assert record.average_rating == 0.0
        assert record.registration_date == clock() - timedelta(days=3)
        assert record.computed_at == clock()

    @pytest.mark.asyncio
    async def test_first_rating_lifts_badge_to_yellow(
        self, service, add_driver, db_session, clock
    ):
        await add_driver("drv-001")
        db_session.add(_rated_trip("t1", "drv-001", 5, clock))
        await db_session.commit()

        record = await service.get_driver_safety_record("drv-001")
        assert record.badge is SafetyBadge.YELLOW
        assert record.average_rating == 5.0


class TestIncidents:
    @pytest.mark.asyncio
    async def test_incident_turns_badge_red(
        self, service, add_driver, db_session, clock
    ):
        entry = await add_driver("drv-001")
        await service.report_incident(
            driver_id="drv-001",
            type=IncidentType.VIOLATION,
            description="Overloaded with six passengers",
            reported_by="tmu-lopez",
            severity=IncidentSeverity.MEDIUM,
            occurred_at=clock() - timedelta(days=10),
        )

        cached = await db_session.get(SafetyRecordModel, "drv-001")
        assert cached.badge is SafetyBadge.RED
        assert cached.incidents == 1
        assert cached.last_incident_date == clock() - timedelta(days=10)
        assert entry.total_rides == 0

    @pytest.mark.asyncio
    async def test_incident_defaults_to_now(self, service, add_driver, clock):
        await add_driver("drv-001")
        await service.report_incident(
            driver_id="drv-001",
            type=IncidentType.ACCIDENT,
            description="Minor collision",
            reported_by="pax-1",
        )
        record = await service.get_driver_safety_record("drv-001")
        assert record.last_incident_date == clock()

    @pytest.mark.asyncio
    async def test_incident_for_unknown_driver(self, service):
        with pytest.raises(NotFoundError):
            await service.report_incident(
                driver_id="drv-404",
                type=IncidentType.OTHER,
                description="",
                reported_by="ops",
            )

    @pytest.mark.asyncio
    async def test_future_incident_rejected(self, service, add_driver, clock):
        await add_driver("drv-001")
        with pytest.raises(ValidationError):
            await service.report_incident(
                driver_id="drv-001",
                type=IncidentType.OTHER,
                description="",
                reported_by="ops",
                occurred_at=clock() + timedelta(days=1),
            )

    @pytest.mark.asyncio
    async def test_naive_incident_date_rejected(self, service, add_driver):
        await add_driver("drv-001")
        with pytest.raises(ValidationError):
            await service.report_incident(
                driver_id="drv-001",
                type=IncidentType.OTHER,
                description="",
                reported_by="ops",
                occurred_at=datetime(2026, 1, 1, 8, 0),
            )

    @pytest.mark.asyncio
    async def test_red_clears_once_incident_ages(self, db_session, add_driver, clock):
        await add_driver("drv-001")
        db_session.add(_rated_trip("t1", "drv-001", 5, clock))
        await db_session.commit()
        service = SafetyService(db_session, clock)
        await service.report_incident(
            driver_id="drv-001",
            type=IncidentType.MISCONDUCT,
            description="Refused a senior passenger",
            reported_by="pax-3",
            occurred_at=clock() - timedelta(days=29),
        )
        assert (await service.get_driver_safety_record("drv-001")).badge is SafetyBadge.RED

        clock.advance(days=2)
        record = await service.get_driver_safety_record("drv-001")
        # one ride so far, so it drops to probation rather than green
        assert record.badge is SafetyBadge.YELLOW


class TestComplaints:
    @pytest.mark.asyncio
    async def test_complaint_counted(self, service, add_driver, db_session):
        await add_driver("drv-001")
        await service.report_complaint(
            driver_id="drv-001",
            type=ComplaintType.OVERCHARGING,
            description="Charged 80 for a 40 ride",
            reported_by="pax-1",
        )
        cached = await db_session.get(SafetyRecordModel, "drv-001")
        assert cached.complaints == 1

    @pytest.mark.asyncio
    async def test_complaint_with_unknown_trip(self, service, add_driver):
        await add_driver("drv-001")
        with pytest.raises(NotFoundError):
            await service.report_complaint(
                driver_id="drv-001",
                type=ComplaintType.RUDE_BEHAVIOR,
                description="",
                reported_by="pax-1",
                trip_id="trip_missing",
            )

    @pytest.mark.asyncio
    async def test_four_complaints_turn_red(self, service, add_driver):
        await add_driver("drv-001")
        for _ in range(4):
            await service.report_complaint(
                driver_id="drv-001",
                type=ComplaintType.UNSAFE_DRIVING,
                description="Speeding on the national road",
                reported_by="pax-1",
            )
        record = await service.get_driver_safety_record("drv-001")
        assert record.complaints == 4
        assert record.badge is SafetyBadge.RED
