"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Every public method is ``guarded``: storage
failures surface as ``PersistenceError``.

The incident and complaint repositories are append-only on purpose: they
expose no update or delete.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import delete, desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .database import guarded
from .models import (
    ComplaintModel,
    DemandAreaModel,
    DriverLocationModel,
    DriverModel,
    IncidentModel,
    SafetyRecordModel,
    ScheduledRideModel,
    TripModel,
    ZoneRateModel,
)
from src.domain.enums import (
    DRIVER_BOUND_STATUSES,
    TERMINAL_STATUSES,
    DriverStatus,
    Role,
    ScheduledRideStatus,
    TripStatus,
)
from src.domain.errors import InvalidTransitionError
from src.domain.safety import SafetyRecord


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def add(self, trip: TripModel) -> TripModel:
        self.session.add(trip)
        await self.session.flush()
        return trip

    @guarded
    async def get_by_id(self, trip_id: str) -> Optional[TripModel]:
        return await self.session.get(TripModel, trip_id)

    @guarded
    async def reload(self, trip: TripModel) -> TripModel:
        await self.session.refresh(trip)
        return trip

    @guarded
    async def apply(
        self, trip_id: str, expected_status: TripStatus, values: dict[str, Any]
    ) -> bool:
        """
        Partial write guarded by the current status (compare-and-set).

        Returns ``False`` when the row no longer holds *expected_status*,
        i.e. another writer got there first.  Binding a driver who already
        holds another active trip violates the partial unique index; the
        transaction is rolled back and ``InvalidTransitionError`` raised.
        Instances in the session are expired by that rollback.
        """
        try:
            result = await self.session.execute(
                update(TripModel)
                .where(TripModel.id == trip_id)
                .where(TripModel.status == expected_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            await self.session.rollback()
            raise InvalidTransitionError(
                f"driver {values.get('driver_id')} is already on another trip"
            ) from exc
        return result.rowcount == 1

    @guarded
    async def list_for_participant(
        self, user_id: str, role: Role
    ) -> list[TripModel]:
        column = TripModel.driver_id if role is Role.DRIVER else TripModel.passenger_id
        result = await self.session.execute(
            select(TripModel)
            .where(column == user_id)
            .order_by(desc(TripModel.created_at))
        )
        return list(result.scalars().all())

    @guarded
    async def get_active_for(
        self, user_id: str, role: Role
    ) -> Optional[TripModel]:
        column = TripModel.driver_id if role is Role.DRIVER else TripModel.passenger_id
        result = await self.session.execute(
            select(TripModel)
            .where(column == user_id)
            .where(TripModel.status.not_in(list(TERMINAL_STATUSES)))
            .order_by(desc(TripModel.created_at))
            .limit(1)
        )
        return result.scalar_one_or_none()

    @guarded
    async def driver_busy_with(self, driver_id: str) -> Optional[TripModel]:
        """The trip *driver_id* is currently bound to, if any."""
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.driver_id == driver_id)
            .where(TripModel.status.in_(list(DRIVER_BOUND_STATUSES)))
            .limit(1)
        )
        return result.scalar_one_or_none()

    @guarded
    async def list_open(self, created_since: datetime) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.status == TripStatus.SEARCHING)
            .where(TripModel.created_at >= created_since)
            .order_by(TripModel.created_at)
        )
        return list(result.scalars().all())

    @guarded
    async def list_searching_before(self, cutoff: datetime) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.status == TripStatus.SEARCHING)
            .where(TripModel.searching_at <= cutoff)
        )
        return list(result.scalars().all())

    @guarded
    async def list_completed_for_driver(self, driver_id: str) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.driver_id == driver_id)
            .where(TripModel.status == TripStatus.COMPLETED)
        )
        return list(result.scalars().all())

    @guarded
    async def bound_driver_ids(self) -> set[str]:
        """Drivers that hold an ACCEPTED / ARRIVED / IN_PROGRESS trip."""
        result = await self.session.execute(
            select(TripModel.driver_id)
            .where(TripModel.status.in_(list(DRIVER_BOUND_STATUSES)))
            .where(TripModel.driver_id.is_not(None))
        )
        return set(result.scalars().all())

    @guarded
    async def list_created_since(self, since: datetime) -> list[TripModel]:
        """Every trip booked at or after *since*, whatever became of it."""
        result = await self.session.execute(
            select(TripModel).where(TripModel.created_at >= since)
        )
        return list(result.scalars().all())


class DriverLocationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def get(self, driver_id: str) -> Optional[DriverLocationModel]:
        return await self.session.get(DriverLocationModel, driver_id)

    @guarded
    async def upsert(self, driver_id: str, **fields: Any) -> DriverLocationModel:
        entry = await self.session.get(DriverLocationModel, driver_id)
        if entry is None:
            entry = DriverLocationModel(driver_id=driver_id, **fields)
            self.session.add(entry)
        else:
            for name, value in fields.items():
                setattr(entry, name, value)
        await self.session.flush()
        return entry

    @guarded
    async def set_status(
        self, driver_id: str, status: DriverStatus, is_online: bool
    ) -> bool:
        entry = await self.session.get(DriverLocationModel, driver_id)
        if entry is None:
            return False
        entry.status = status
        entry.is_online = is_online
        await self.session.flush()
        return True

    @guarded
    async def remove(self, driver_id: str) -> bool:
        result = await self.session.execute(
            delete(DriverLocationModel).where(
                DriverLocationModel.driver_id == driver_id
            )
        )
        return result.rowcount == 1

    @guarded
    async def available_since(
        self, cutoff: datetime, cells: Optional[Iterable[str]] = None
    ) -> list[DriverLocationModel]:
        """Available, online entries with a heartbeat at or after *cutoff*."""
        query = (
            select(DriverLocationModel)
            .where(DriverLocationModel.status == DriverStatus.AVAILABLE)
            .where(DriverLocationModel.is_online.is_(True))
            .where(DriverLocationModel.last_updated >= cutoff)
        )
        if cells is not None:
            query = query.where(DriverLocationModel.h3_cell.in_(list(cells)))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    @guarded
    async def online_since(self, cutoff: datetime) -> list[DriverLocationModel]:
        """Online entries, busy or not, with a heartbeat at or after *cutoff*."""
        result = await self.session.execute(
            select(DriverLocationModel)
            .where(DriverLocationModel.is_online.is_(True))
            .where(DriverLocationModel.status != DriverStatus.OFFLINE)
            .where(DriverLocationModel.last_updated >= cutoff)
        )
        return list(result.scalars().all())

    @guarded
    async def list_by_status(self, status: DriverStatus) -> list[DriverLocationModel]:
        result = await self.session.execute(
            select(DriverLocationModel).where(DriverLocationModel.status == status)
        )
        return list(result.scalars().all())

    @guarded
    async def prune_idle(self, before: datetime) -> int:
        """Drop entries idle since *before*, except drivers marked on a ride."""
        result = await self.session.execute(
            delete(DriverLocationModel)
            .where(DriverLocationModel.last_updated < before)
            .where(DriverLocationModel.status != DriverStatus.ON_RIDE)
        )
        return result.rowcount or 0


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def get_by_id(self, driver_id: str) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    @guarded
    async def upsert(self, driver_id: str, **fields: Any) -> DriverModel:
        driver = await self.session.get(DriverModel, driver_id)
        if driver is None:
            driver = DriverModel(id=driver_id, **fields)
            self.session.add(driver)
        else:
            for name, value in fields.items():
                setattr(driver, name, value)
        await self.session.flush()
        return driver


class IncidentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def append(self, incident: IncidentModel) -> IncidentModel:
        self.session.add(incident)
        await self.session.flush()
        return incident

    @guarded
    async def list_for_driver(self, driver_id: str) -> list[IncidentModel]:
        result = await self.session.execute(
            select(IncidentModel)
            .where(IncidentModel.driver_id == driver_id)
            .order_by(IncidentModel.occurred_at)
        )
        return list(result.scalars().all())


class ComplaintRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def append(self, complaint: ComplaintModel) -> ComplaintModel:
        self.session.add(complaint)
        await self.session.flush()
        return complaint

    @guarded
    async def list_for_driver(self, driver_id: str) -> list[ComplaintModel]:
        result = await self.session.execute(
            select(ComplaintModel)
            .where(ComplaintModel.driver_id == driver_id)
            .order_by(ComplaintModel.occurred_at)
        )
        return list(result.scalars().all())


class SafetyRecordRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def get(self, driver_id: str) -> Optional[SafetyRecordModel]:
        return await self.session.get(SafetyRecordModel, driver_id)

    @guarded
    async def store(self, record: SafetyRecord) -> SafetyRecordModel:
        """Overwrite the cached row with a freshly derived record."""
        row = await self.session.get(SafetyRecordModel, record.driver_id)
        if row is None:
            row = SafetyRecordModel(driver_id=record.driver_id)
            self.session.add(row)
        row.badge = record.badge
        row.total_rides = record.total_rides
        row.average_rating = record.average_rating
        row.incidents = record.incidents
        row.complaints = record.complaints
        row.registration_date = record.registration_date
        row.last_incident_date = record.last_incident_date
        row.last_trip_completed_at = record.last_trip_completed_at
        row.computed_at = record.computed_at
        await self.session.flush()
        return row


class ZoneRateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def get_active(self, zone_name: str) -> Optional[ZoneRateModel]:
        result = await self.session.execute(
            select(ZoneRateModel)
            .where(ZoneRateModel.zone_name == zone_name)
            .where(ZoneRateModel.is_active.is_(True))
            .order_by(desc(ZoneRateModel.effective_date))
            .limit(1)
        )
        return result.scalar_one_or_none()

    @guarded
    async def list_active(self) -> list[ZoneRateModel]:
        result = await self.session.execute(
            select(ZoneRateModel)
            .where(ZoneRateModel.is_active.is_(True))
            .order_by(ZoneRateModel.zone_name)
        )
        return list(result.scalars().all())

    @guarded
    async def replace(self, rate: ZoneRateModel) -> ZoneRateModel:
        """Deactivate the zone's current tariff and add *rate* as active."""
        await self.session.execute(
            update(ZoneRateModel)
            .where(ZoneRateModel.zone_name == rate.zone_name)
            .where(ZoneRateModel.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        rate.is_active = True
        self.session.add(rate)
        await self.session.flush()
        return rate


class ScheduledRideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def add(self, ride: ScheduledRideModel) -> ScheduledRideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    @guarded
    async def get_by_id(self, ride_id: str) -> Optional[ScheduledRideModel]:
        return await self.session.get(ScheduledRideModel, ride_id)

    @guarded
    async def reload(self, ride: ScheduledRideModel) -> ScheduledRideModel:
        await self.session.refresh(ride)
        return ride

    @guarded
    async def apply(
        self,
        ride_id: str,
        expected_status: ScheduledRideStatus,
        values: dict[str, Any],
    ) -> bool:
        """Compare-and-set on status; ``False`` when another writer won."""
        result = await self.session.execute(
            update(ScheduledRideModel)
            .where(ScheduledRideModel.id == ride_id)
            .where(ScheduledRideModel.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @guarded
    async def list_for_passenger(self, passenger_id: str) -> list[ScheduledRideModel]:
        result = await self.session.execute(
            select(ScheduledRideModel)
            .where(ScheduledRideModel.passenger_id == passenger_id)
            .order_by(ScheduledRideModel.scheduled_at)
        )
        return list(result.scalars().all())

    @guarded
    async def list_for_driver(
        self, driver_id: str, statuses: Iterable[ScheduledRideStatus]
    ) -> list[ScheduledRideModel]:
        result = await self.session.execute(
            select(ScheduledRideModel)
            .where(ScheduledRideModel.driver_id == driver_id)
            .where(ScheduledRideModel.status.in_(list(statuses)))
            .order_by(ScheduledRideModel.scheduled_at)
        )
        return list(result.scalars().all())

    @guarded
    async def list_unassigned_after(
        self, cutoff: datetime
    ) -> list[ScheduledRideModel]:
        """Rides still waiting for a driver, due after *cutoff*, soonest first."""
        result = await self.session.execute(
            select(ScheduledRideModel)
            .where(ScheduledRideModel.status == ScheduledRideStatus.SCHEDULED)
            .where(ScheduledRideModel.driver_id.is_(None))
            .where(ScheduledRideModel.scheduled_at >= cutoff)
            .order_by(ScheduledRideModel.scheduled_at)
        )
        return list(result.scalars().all())


class DemandAreaRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @guarded
    async def list_all(self) -> list[DemandAreaModel]:
        result = await self.session.execute(
            select(DemandAreaModel).order_by(DemandAreaModel.name)
        )
        return list(result.scalars().all())

    @guarded
    async def add(self, area: DemandAreaModel) -> DemandAreaModel:
        self.session.add(area)
        await self.session.flush()
        return area
