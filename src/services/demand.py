"""
Demand forecasting over the booking history.

Areas come from ``demand_areas``; until an operator stores any, the
built-in Lopez hot spots are used.  The history is every trip booked in
the lookback window, binned by pickup cell and local hour.  Drivers are
counted if they are online with a fresh heartbeat, busy or not.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.demand import (
    DEFAULT_AREAS,
    DemandArea,
    DispatchSuggestion,
    Forecast,
    demand_histogram,
    generate_dispatching_suggestions,
    local_hour,
    predict_high_demand_areas,
)
from src.domain.distance import valid_coordinates
from src.domain.entities import Location, SessionContext
from src.domain.enums import DemandAreaKind, Role
from src.domain.errors import ValidationError
from src.infrastructure.clock import Clock, utcnow
from src.infrastructure.database import commit
from src.infrastructure.models import DemandAreaModel
from src.infrastructure.repositories import (
    DemandAreaRepository,
    DriverLocationRepository,
    TripRepository,
)

logger = logging.getLogger(__name__)


def _as_area(row: DemandAreaModel) -> DemandArea:
    return DemandArea(
        id=row.id,
        name=row.name,
        kind=row.kind,
        location=Location(row.latitude, row.longitude),
        radius_km=row.radius_km,
        peak_hours=frozenset(row.peak_hours),
        average_demand=row.average_demand,
    )


class DemandService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock
        self.areas = DemandAreaRepository(session)
        self.trips = TripRepository(session)
        self.locations = DriverLocationRepository(session)
        self.lookback = timedelta(days=settings.demand_lookback_days)
        self.freshness = timedelta(minutes=settings.freshness_window_minutes)

    async def list_areas(self) -> list[DemandArea]:
        rows = await self.areas.list_all()
        if not rows:
            return list(DEFAULT_AREAS)
        return [_as_area(row) for row in rows]

    async def add_area(
        self,
        ctx: SessionContext,
        name: str,
        kind: DemandAreaKind,
        location: Location,
        radius_km: float,
        peak_hours: Iterable[int],
        average_demand: float,
    ) -> DemandArea:
        ctx.require(Role.ADMIN)
        name = name.strip()
        hours = sorted(set(peak_hours))
        if not name:
            raise ValidationError("area name is required")
        if not valid_coordinates(location.latitude, location.longitude):
            raise ValidationError(
                f"area coordinates out of range: "
                f"({location.latitude}, {location.longitude})"
            )
        if radius_km <= 0:
            raise ValidationError("area radius must be positive")
        if not hours or not all(0 <= h <= 23 for h in hours):
            raise ValidationError("peak hours must be local hours from 0 to 23")
        if average_demand < 0:
            raise ValidationError("average demand cannot be negative")

        row = DemandAreaModel(
            id=f"area_{uuid.uuid4().hex[:12]}",
            name=name,
            kind=kind,
            latitude=location.latitude,
            longitude=location.longitude,
            radius_km=radius_km,
            peak_hours=hours,
            average_demand=average_demand,
            updated_at=self.clock(),
        )
        await self.areas.add(row)
        await commit(self.session)
        logger.info("Demand area %s (%s) added, peaks %s", row.id, name, hours)
        return _as_area(row)

    async def forecast(self, at: Optional[datetime] = None) -> list[Forecast]:
        """Areas in their peak hour at *at* (default now), busiest first."""
        at = at or self.clock()
        bookings = await self.trips.list_created_since(at - self.lookback)
        histogram = demand_histogram(
            bookings, settings.local_timezone, settings.demand_h3_resolution
        )
        hour = local_hour(at, settings.local_timezone)
        forecasts = predict_high_demand_areas(await self.list_areas(), histogram, hour)
        logger.debug(
            "Forecast at local hour %d from %d bookings: %d hot areas",
            hour,
            len(bookings),
            len(forecasts),
        )
        return forecasts

    async def suggestions(
        self, at: Optional[datetime] = None
    ) -> list[DispatchSuggestion]:
        """Where drivers should head for the current peak, most urgent first."""
        at = at or self.clock()
        forecasts = await self.forecast(at)
        drivers = await self.locations.online_since(at - self.freshness)
        return generate_dispatching_suggestions(forecasts, drivers)
