"""
Safety record refresh and incident / complaint reporting.

The record is always rebuilt from trips plus the two logs; the
``safety_records`` row is a write-through cache for admin listings, never
read back as input.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.enums import ComplaintType, IncidentSeverity, IncidentType
from src.domain.errors import NotFoundError, ValidationError
from src.domain.safety import SafetyRecord, compute_safety_record
from src.infrastructure.clock import Clock, utcnow
from src.infrastructure.database import commit
from src.infrastructure.models import ComplaintModel, IncidentModel
from src.infrastructure.repositories import (
    ComplaintRepository,
    DriverLocationRepository,
    DriverRepository,
    IncidentRepository,
    SafetyRecordRepository,
    TripRepository,
)

logger = logging.getLogger(__name__)


class SafetyService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock
        self.drivers = DriverRepository(session)
        self.trips = TripRepository(session)
        self.incidents = IncidentRepository(session)
        self.complaints = ComplaintRepository(session)
        self.records = SafetyRecordRepository(session)
        self.locations = DriverLocationRepository(session)

    async def get_driver_safety_record(self, driver_id: str) -> SafetyRecord:
        return await self.refresh(driver_id)

    async def refresh(self, driver_id: str) -> SafetyRecord:
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found")

        record = compute_safety_record(
            driver_id,
            await self.trips.list_completed_for_driver(driver_id),
            await self.incidents.list_for_driver(driver_id),
            await self.complaints.list_for_driver(driver_id),
            driver.registered_at,
            self.clock(),
        )
        await self.records.store(record)

        entry = await self.locations.get(driver_id)
        if entry is not None:
            entry.rating = record.average_rating
            entry.total_rides = record.total_rides
        await commit(self.session)

        logger.info(
            "Safety record for %s: %s (%d rides, avg %s, %d incidents, %d complaints)",
            driver_id,
            record.badge.value,
            record.total_rides,
            record.average_rating,
            record.incidents,
            record.complaints,
        )
        return record

    def _occurred(self, occurred_at: Optional[datetime]) -> datetime:
        now = self.clock()
        if occurred_at is None:
            return now
        if occurred_at.tzinfo is None:
            raise ValidationError("event date must carry a timezone")
        if occurred_at > now:
            raise ValidationError("event date cannot be in the future")
        return occurred_at

    async def _require_driver(self, driver_id: str) -> None:
        if await self.drivers.get_by_id(driver_id) is None:
            raise NotFoundError(f"Driver {driver_id} not found")

    async def report_incident(
        self,
        *,
        driver_id: str,
        type: IncidentType,
        description: str,
        reported_by: str,
        severity: IncidentSeverity = IncidentSeverity.LOW,
        occurred_at: Optional[datetime] = None,
    ) -> None:
        await self._require_driver(driver_id)
        await self.incidents.append(
            IncidentModel(
                id=f"incident_{uuid.uuid4().hex}",
                driver_id=driver_id,
                occurred_at=self._occurred(occurred_at),
                type=type,
                description=description,
                reported_by=reported_by,
                severity=severity,
                recorded_at=self.clock(),
            )
        )
        await commit(self.session)
        logger.warning(
            "Incident (%s, %s) recorded against driver %s",
            type.value,
            severity.value,
            driver_id,
        )
        await self.refresh(driver_id)

    async def report_complaint(
        self,
        *,
        driver_id: str,
        type: ComplaintType,
        description: str,
        reported_by: str,
        trip_id: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
    ) -> None:
        await self._require_driver(driver_id)
        if trip_id is not None:
            trip = await self.trips.get_by_id(trip_id)
            if trip is None:
                raise NotFoundError(f"Trip {trip_id} not found")
            if trip.driver_id != driver_id:
                raise ValidationError(f"trip {trip_id} was not driven by {driver_id}")
        await self.complaints.append(
            ComplaintModel(
                id=f"complaint_{uuid.uuid4().hex}",
                driver_id=driver_id,
                occurred_at=self._occurred(occurred_at),
                type=type,
                description=description,
                reported_by=reported_by,
                trip_id=trip_id,
                recorded_at=self.clock(),
            )
        )
        await commit(self.session)
        logger.info("Complaint (%s) recorded against driver %s", type.value, driver_id)
        await self.refresh(driver_id)
