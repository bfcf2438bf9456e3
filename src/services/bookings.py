"""
Booking service: trip creation and the guarded trip update pipeline.

update_trip
-----------
1. Load the trip (lazy search-timeout check first).
2. ``plan_update`` validates the change against the lifecycle rules.
3. ``TripRepository.apply`` writes the planned columns only if the row still
   holds the status the plan was made against (compare-and-set).
4. Commit.  Nothing below runs unless the trip write is durable.
5. Registry status hint for the driver, then the safety refresh.

A failed compare-and-set means another caller moved the trip first.  The
update is re-planned against the fresh row: a retry of what already
happened becomes a no-op, anything else is an ``InvalidTransitionError``.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.distance import haversine_km, valid_coordinates
from src.domain.entities import (
    SYSTEM_CONTEXT,
    PassengerInfo,
    Place,
    SessionContext,
    TripChanges,
)
from src.domain.enums import (
    NO_DRIVER_FOUND,
    DriverStatus,
    RideKind,
    Role,
    TripStatus,
)
from src.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from src.domain.lifecycle import TransitionPlan, plan_update, search_expired
from src.domain.pricing import MAX_DISTANCE_KM, FareEstimate
from src.infrastructure.clock import Clock, utcnow
from src.infrastructure.database import commit
from src.infrastructure.geocoding import Geocoder, GeocodingError
from src.infrastructure.models import TripModel
from src.infrastructure.repositories import (
    DriverLocationRepository,
    DriverRepository,
    TripRepository,
)
from src.services.fares import FareService
from src.services.safety import SafetyService

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = utcnow,
        geocoder: Optional[Geocoder] = None,
    ):
        self.session = session
        self.clock = clock
        self.geocoder = geocoder
        self.trips = TripRepository(session)
        self.locations = DriverLocationRepository(session)
        self.drivers = DriverRepository(session)
        self.fares = FareService(session, clock)
        self.safety = SafetyService(session, clock)
        self.timeout = settings.search_timeout_seconds

    # ── Creation ──────────────────────────────────────────────────────

    async def create_booking(
        self,
        ctx: SessionContext,
        passenger: PassengerInfo,
        pickup: Place,
        dropoff: Place,
        *,
        distance_km: Optional[float] = None,
        fare: Optional[FareEstimate] = None,
        preferred_driver_id: Optional[str] = None,
        ride_kind: RideKind = RideKind.NORMAL,
        notes: Optional[str] = None,
        zone_name: Optional[str] = None,
        is_senior_discount: bool = False,
        is_pwd_discount: bool = False,
    ) -> TripModel:
        """
        Persist a new trip, already SEARCHING, in a single commit.

        ``fare`` is stored as given when supplied; otherwise the zone tariff
        is quoted here.  Either way it is frozen on the row.
        """
        ctx.require(Role.PASSENGER, Role.ADMIN)
        if not passenger.passenger_id.strip():
            raise ValidationError("passenger id is required")
        if ctx.role is Role.PASSENGER and ctx.user_id != passenger.passenger_id:
            raise ValidationError("passengers can only book for themselves")

        pickup = await self._resolve_place(pickup, "pickup", required=True)
        dropoff = await self._resolve_place(dropoff, "dropoff", required=False)

        if distance_km is None:
            if dropoff.location is None:
                raise ValidationError("distance is required when dropoff has no coordinates")
            distance_km = haversine_km(
                pickup.location.latitude,
                pickup.location.longitude,
                dropoff.location.latitude,
                dropoff.location.longitude,
            )
        if not math.isfinite(distance_km) or not 0 <= distance_km <= MAX_DISTANCE_KM:
            raise ValidationError(
                f"distance must be between 0 and {MAX_DISTANCE_KM} km, got {distance_km}"
            )

        if fare is None:
            rate, fare = await self.fares.quote(
                distance_km,
                zone_name=zone_name,
                is_senior_discount=is_senior_discount,
                is_pwd_discount=is_pwd_discount,
                is_errand=ride_kind is RideKind.ERRAND,
            )
            zone_name = rate.name
        elif fare.min <= 0 or fare.min > fare.max:
            raise ValidationError(f"malformed fare band {fare.min}..{fare.max}")

        active = await self.trips.get_active_for(passenger.passenger_id, Role.PASSENGER)
        if active is not None and not await self._expire_if_due(active):
            raise ValidationError(
                f"passenger {passenger.passenger_id} already has trip {active.id} open"
            )

        now = self.clock()
        trip = TripModel(
            id=f"trip_{uuid.uuid4().hex}",
            passenger_id=passenger.passenger_id,
            passenger_name=passenger.name or None,
            passenger_phone=passenger.phone or None,
            preferred_driver_id=preferred_driver_id,
            pickup_text=pickup.text,
            pickup_lat=pickup.location.latitude,
            pickup_lng=pickup.location.longitude,
            dropoff_text=dropoff.text,
            dropoff_lat=dropoff.location.latitude if dropoff.location else None,
            dropoff_lng=dropoff.location.longitude if dropoff.location else None,
            distance_km=float(distance_km),
            fare_min=fare.min,
            fare_max=fare.max,
            fare_base=fare.base,
            discount_amount=fare.discount_amount,
            discount_type=fare.discount_type,
            zone_name=zone_name,
            ride_kind=ride_kind,
            notes=notes,
            status=TripStatus.REQUESTED,
            created_at=now,
        )
        # the request and its move to SEARCHING land in one commit
        plan = plan_update(
            trip, TripChanges(status=TripStatus.SEARCHING), SYSTEM_CONTEXT, now
        )
        for column, value in plan.values.items():
            setattr(trip, column, value)

        await self.trips.add(trip)
        await commit(self.session)
        trip = await self.trips.reload(trip)
        logger.info(
            "Trip %s requested by %s (%.2f km, PHP %s-%s), searching",
            trip.id,
            trip.passenger_id,
            trip.distance_km,
            fare.min,
            fare.max,
        )
        return trip

    async def _resolve_place(self, place: Place, label: str, required: bool) -> Place:
        """Fill whichever half of *place* is missing using the geocoder."""
        text = (place.text or "").strip()
        location = place.location

        if self.geocoder is not None:
            try:
                if location is None and text:
                    location = await self.geocoder.forward(text)
                elif location is not None and not text:
                    text = (await self.geocoder.reverse(location)) or ""
            except GeocodingError as exc:
                logger.warning("Geocoding %s failed: %s", label, exc)

        if not text:
            raise ValidationError(f"{label} address is required")
        if location is None:
            if required:
                raise ValidationError(f"{label} coordinates are required")
            return Place(text=text)
        if not valid_coordinates(location.latitude, location.longitude):
            raise ValidationError(
                f"{label} coordinates out of range: "
                f"({location.latitude}, {location.longitude})"
            )
        return Place(text=text, location=location)

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_trip(
        self, trip_id: str, ctx: Optional[SessionContext] = None
    ) -> TripModel:
        trip = await self.trips.get_by_id(trip_id)
        if trip is None or (ctx is not None and not _can_view(trip, ctx)):
            raise NotFoundError(f"Trip {trip_id} not found")
        await self._expire_if_due(trip)
        return trip

    async def list_trips(self, ctx: SessionContext) -> list[TripModel]:
        return await self.trips.list_for_participant(ctx.user_id, ctx.role)

    async def get_active_trip(self, ctx: SessionContext) -> Optional[TripModel]:
        trip = await self.trips.get_active_for(ctx.user_id, ctx.role)
        if trip is not None and await self._expire_if_due(trip):
            return None
        return trip

    async def list_open_bookings(self, ctx: SessionContext) -> list[TripModel]:
        """Searching trips from the last hour; ones pre-selecting *ctx* first."""
        ctx.require(Role.DRIVER, Role.ADMIN)
        since = self.clock() - timedelta(minutes=settings.open_booking_window_minutes)
        open_trips = [
            trip
            for trip in await self.trips.list_open(since)
            if not await self._expire_if_due(trip)
        ]
        open_trips.sort(
            key=lambda t: (t.preferred_driver_id != ctx.user_id, t.created_at)
        )
        return open_trips

    # ── Updates ───────────────────────────────────────────────────────

    async def update_trip(
        self, trip_id: str, changes: TripChanges, ctx: SessionContext
    ) -> TripModel:
        trip = await self.trips.get_by_id(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip {trip_id} not found")
        await self._expire_if_due(trip)

        if changes.status is TripStatus.ACCEPTED and trip.status is TripStatus.SEARCHING:
            driver_id = changes.driver_id or (
                ctx.user_id if ctx.role is Role.DRIVER else None
            )
            if driver_id:
                busy = await self.trips.driver_busy_with(driver_id)
                if busy is not None and busy.id != trip.id:
                    raise InvalidTransitionError(
                        f"driver {driver_id} is already on trip {busy.id}"
                    )

        plan = plan_update(trip, changes, ctx, self.clock())
        return await self._execute(trip, plan, changes, ctx)

    async def rate_trip(
        self,
        trip_id: str,
        ctx: SessionContext,
        rating: int,
        feedback: Optional[str] = None,
    ) -> TripModel:
        """Post-trip rating.  The passenger rates the driver and vice versa."""
        if not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(
                f"rating must be an integer from {MIN_RATING} to {MAX_RATING}"
            )
        trip = await self.get_trip(trip_id, ctx)
        if trip.status is not TripStatus.COMPLETED:
            raise InvalidTransitionError(
                f"only completed trips can be rated (trip is {trip.status.value})"
            )

        if ctx.role is Role.PASSENGER:
            values = {"rating_for_driver": rating, "feedback_for_driver": feedback}
        elif ctx.role is Role.DRIVER:
            values = {"rating_for_passenger": rating, "feedback_for_passenger": feedback}
        else:
            raise ValidationError("only trip participants can leave a rating")

        if not await self.trips.apply(trip.id, TripStatus.COMPLETED, values):
            raise InvalidTransitionError(f"trip {trip.id} changed while rating")
        await commit(self.session)
        trip = await self.trips.reload(trip)
        logger.info("Trip %s rated %d by %s", trip.id, rating, ctx.role.value)

        if ctx.role is Role.PASSENGER and trip.driver_id:
            await self._refresh_safety(trip.driver_id)
        return trip

    async def expire_stale_searches(self) -> int:
        """Cancel every SEARCHING trip that outlived the search timeout."""
        cutoff = self.clock() - timedelta(seconds=self.timeout)
        expired = 0
        for trip in await self.trips.list_searching_before(cutoff):
            if await self._expire_if_due(trip):
                expired += 1
        return expired

    # ── Internals ─────────────────────────────────────────────────────

    async def _expire_if_due(self, trip: TripModel) -> bool:
        """Cancel *trip* if its search timed out.  True if it is now cancelled."""
        now = self.clock()
        if not search_expired(trip, now, self.timeout):
            return False
        plan = plan_update(
            trip,
            TripChanges(
                status=TripStatus.CANCELLED, cancellation_reason=NO_DRIVER_FOUND
            ),
            SYSTEM_CONTEXT,
            now,
        )
        if await self.trips.apply(trip.id, plan.expected_status, plan.values):
            await commit(self.session)
            logger.info("Trip %s cancelled: no driver found", trip.id)
        # on a lost race someone accepted or cancelled it in the meantime
        await self.trips.reload(trip)
        return trip.status is TripStatus.CANCELLED

    async def _execute(
        self,
        trip: TripModel,
        plan: TransitionPlan,
        changes: Optional[TripChanges] = None,
        ctx: Optional[SessionContext] = None,
    ) -> TripModel:
        if plan.is_noop:
            return trip

        if not await self.trips.apply(trip.id, plan.expected_status, plan.values):
            trip = await self.trips.reload(trip)
            if changes is not None and ctx is not None:
                replanned = plan_update(trip, changes, ctx, self.clock())
                if replanned.is_noop:
                    return trip
            raise InvalidTransitionError(
                f"trip {trip.id} moved to {trip.status.value} concurrently"
            )

        await commit(self.session)
        trip = await self.trips.reload(trip)
        if plan.target is not None:
            logger.info(
                "Trip %s: %s -> %s",
                trip.id,
                plan.expected_status.value,
                plan.target.value,
            )

        if plan.driver_effect is not None:
            await self._set_driver_status(*plan.driver_effect)
        if plan.refresh_safety_for is not None:
            await self._refresh_safety(plan.refresh_safety_for)
        return trip

    async def _set_driver_status(self, driver_id: str, status: DriverStatus) -> None:
        updated = await self.locations.set_status(driver_id, status, is_online=True)
        if not updated:
            logger.warning(
                "Driver %s has no registry entry; status %s not applied",
                driver_id,
                status.value,
            )
            return
        await commit(self.session)

    async def _refresh_safety(self, driver_id: str) -> None:
        if await self.drivers.get_by_id(driver_id) is None:
            logger.warning("No profile for driver %s; safety record skipped", driver_id)
            return
        await self.safety.refresh(driver_id)


def _can_view(trip: TripModel, ctx: SessionContext) -> bool:
    if ctx.is_privileged:
        return True
    if ctx.role is Role.PASSENGER:
        return trip.passenger_id == ctx.user_id
    # drivers see their own trips plus anything still open for acceptance
    return trip.driver_id == ctx.user_id or trip.status is TripStatus.SEARCHING
