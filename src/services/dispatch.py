"""
Driver registry and nearest-driver dispatch.

The registry row is a *hint*: trips are the source of truth for whether a
driver is busy.  ``reconcile`` repairs the hint in both directions when a
status write after a trip commit was lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.distance import valid_coordinates
from src.domain.entities import Location
from src.domain.enums import DriverStatus
from src.domain.errors import NotFoundError, ValidationError
from src.domain.matching import RankedDriver, cells_within, location_cell, rank_candidates
from src.infrastructure.clock import Clock, utcnow
from src.infrastructure.database import commit
from src.infrastructure.models import DriverLocationModel, DriverModel
from src.infrastructure.repositories import (
    DriverLocationRepository,
    DriverRepository,
    TripRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    released: list[str] = field(default_factory=list)  # on_ride -> available
    occupied: list[str] = field(default_factory=list)  # available -> on_ride


def _require_location(location: Location, label: str) -> None:
    if not valid_coordinates(location.latitude, location.longitude):
        raise ValidationError(
            f"{label} coordinates out of range: "
            f"({location.latitude}, {location.longitude})"
        )


class DispatchService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock
        self.locations = DriverLocationRepository(session)
        self.drivers = DriverRepository(session)
        self.trips = TripRepository(session)
        self.freshness = timedelta(minutes=settings.freshness_window_minutes)

    # ── Profiles ──────────────────────────────────────────────────────

    async def register_driver(
        self,
        driver_id: str,
        full_name: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        plate_number: Optional[str] = None,
    ) -> DriverModel:
        """Create or update a driver profile.  Registration date is set once."""
        if not driver_id.strip() or not full_name.strip():
            raise ValidationError("driver id and name are required")
        fields = dict(
            full_name=full_name,
            phone=phone,
            email=email,
            plate_number=plate_number,
        )
        if await self.drivers.get_by_id(driver_id) is None:
            fields["registered_at"] = self.clock()
        driver = await self.drivers.upsert(driver_id, **fields)
        await commit(self.session)
        return driver

    # ── Registry writes ───────────────────────────────────────────────

    async def upsert_location(
        self,
        driver_id: str,
        location: Location,
        *,
        is_online: bool = True,
        status: Optional[DriverStatus] = None,
    ) -> DriverLocationModel:
        """
        Record a heartbeat: position, online flag and optional status.

        Without an explicit *status* an existing entry keeps the one it holds,
        so a position update never releases a driver who is on a ride.  Only
        a new entry, or one coming back online, defaults to available.
        """
        _require_location(location, "driver")
        if status is None:
            existing = await self.locations.get(driver_id)
            if existing is None or existing.status is DriverStatus.OFFLINE:
                status = DriverStatus.AVAILABLE if is_online else DriverStatus.OFFLINE
            else:
                status = existing.status
        if status is DriverStatus.ON_RIDE and not is_online:
            raise ValidationError("a driver on a ride cannot be offline")
        if status is not DriverStatus.OFFLINE and not is_online:
            status = DriverStatus.OFFLINE

        fields = dict(
            latitude=location.latitude,
            longitude=location.longitude,
            h3_cell=location_cell(
                location.latitude, location.longitude, settings.h3_resolution
            ),
            is_online=is_online,
            status=status,
            last_updated=self.clock(),
        )
        profile = await self.drivers.get_by_id(driver_id)
        if profile is not None:
            fields.update(
                driver_name=profile.full_name,
                driver_email=profile.email,
                plate_number=profile.plate_number,
            )
        entry = await self.locations.upsert(driver_id, **fields)
        await commit(self.session)
        logger.debug(
            "Heartbeat %s at (%.5f, %.5f) %s",
            driver_id,
            location.latitude,
            location.longitude,
            status.value,
        )
        return entry

    async def set_status(self, driver_id: str, status: DriverStatus) -> None:
        updated = await self.locations.set_status(
            driver_id, status, is_online=status is not DriverStatus.OFFLINE
        )
        if not updated:
            raise NotFoundError(f"Driver {driver_id} has no registry entry")
        await commit(self.session)

    async def remove(self, driver_id: str) -> bool:
        removed = await self.locations.remove(driver_id)
        await commit(self.session)
        return removed

    # ── Dispatch ──────────────────────────────────────────────────────

    async def get_available_drivers(
        self,
        pickup: Location,
        limit: Optional[int] = None,
        radius_km: Optional[float] = None,
    ) -> list[RankedDriver]:
        """Fresh, available drivers ordered by distance from *pickup*."""
        _require_location(pickup, "pickup")
        if limit is not None and limit < 1:
            raise ValidationError("limit must be at least 1")
        if radius_km is not None and radius_km <= 0:
            raise ValidationError("radius must be positive")

        now = self.clock()
        cells = None
        if radius_km is not None:
            cells = cells_within(
                pickup.latitude, pickup.longitude, radius_km, settings.h3_resolution
            )
        entries = await self.locations.available_since(now - self.freshness, cells)
        return rank_candidates(
            entries,
            pickup,
            now,
            freshness=self.freshness,
            limit=limit,
            radius_km=radius_km,
        )

    async def find_nearest_driver(self, pickup: Location) -> Optional[RankedDriver]:
        ranked = await self.get_available_drivers(
            pickup, limit=1, radius_km=settings.nearest_driver_radius_km
        )
        return ranked[0] if ranked else None

    # ── Maintenance ───────────────────────────────────────────────────

    async def reconcile(self) -> ReconciliationReport:
        """
        Align registry status hints with the trips drivers are bound to.

        The registry is read before the trips: a driver who accepts in
        between is still AVAILABLE in this snapshot, so it can only be
        marked on a ride, never released.
        """
        on_ride = await self.locations.list_by_status(DriverStatus.ON_RIDE)
        available = await self.locations.list_by_status(DriverStatus.AVAILABLE)
        bound = await self.trips.bound_driver_ids()
        report = ReconciliationReport()

        for entry in on_ride:
            if entry.driver_id not in bound:
                entry.status = DriverStatus.AVAILABLE
                entry.is_online = True
                report.released.append(entry.driver_id)

        for entry in available:
            if entry.driver_id in bound:
                entry.status = DriverStatus.ON_RIDE
                entry.is_online = True
                report.occupied.append(entry.driver_id)

        await commit(self.session)
        if report.released or report.occupied:
            logger.warning(
                "Reconciled driver status: released=%s occupied=%s",
                report.released,
                report.occupied,
            )
        return report

    async def prune_idle(self) -> int:
        cutoff = self.clock() - timedelta(minutes=settings.location_retention_minutes)
        removed = await self.locations.prune_idle(cutoff)
        await commit(self.session)
        if removed:
            logger.info("Pruned %d idle registry entries", removed)
        return removed
