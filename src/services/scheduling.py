"""
Scheduled rides: reservations made ahead of time.

A passenger books a pickup for a later moment; any driver may take it
before then.  The ride moves SCHEDULED -> ACCEPTED -> COMPLETED, and can be
cancelled until it completes.  Every move is a compare-and-set on the
current status, so two drivers taking the same ride cannot both win.
Nothing here creates a live trip; the driver and passenger meet at the
agreed time.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.distance import valid_coordinates
from src.domain.entities import PassengerInfo, Place, SessionContext
from src.domain.enums import SCHEDULED_RIDE_TRANSITIONS, Role, ScheduledRideStatus
from src.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from src.infrastructure.clock import Clock, utcnow
from src.infrastructure.database import commit
from src.infrastructure.models import ScheduledRideModel
from src.infrastructure.repositories import DriverRepository, ScheduledRideRepository

logger = logging.getLogger(__name__)

OPEN_STATUSES = (ScheduledRideStatus.SCHEDULED, ScheduledRideStatus.ACCEPTED)
CLOSED_STATUSES = (ScheduledRideStatus.COMPLETED, ScheduledRideStatus.CANCELLED)

ALL, UPCOMING, PAST = "all", "upcoming", "past"


def _require_place(place: Place, label: str) -> Place:
    text = (place.text or "").strip()
    if not text:
        raise ValidationError(f"{label} address is required")
    if place.location is None:
        raise ValidationError(f"{label} coordinates are required")
    if not valid_coordinates(place.location.latitude, place.location.longitude):
        raise ValidationError(
            f"{label} coordinates out of range: "
            f"({place.location.latitude}, {place.location.longitude})"
        )
    return Place(text=text, location=place.location)


class ScheduledRideService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock
        self.rides = ScheduledRideRepository(session)
        self.drivers = DriverRepository(session)
        self.min_lead = timedelta(minutes=settings.schedule_min_lead_minutes)
        self.max_ahead = timedelta(days=settings.schedule_max_days_ahead)

    # ── Creation ──────────────────────────────────────────────────────

    async def create(
        self,
        ctx: SessionContext,
        passenger: PassengerInfo,
        pickup: Place,
        dropoff: Place,
        scheduled_at: datetime,
        notes: Optional[str] = None,
    ) -> ScheduledRideModel:
        ctx.require(Role.PASSENGER, Role.ADMIN)
        if not passenger.passenger_id.strip():
            raise ValidationError("passenger id is required")
        if ctx.role is Role.PASSENGER and ctx.user_id != passenger.passenger_id:
            raise ValidationError("passengers can only schedule for themselves")
        pickup = _require_place(pickup, "pickup")
        dropoff = _require_place(dropoff, "dropoff")

        if scheduled_at.tzinfo is None:
            raise ValidationError("scheduled time must carry a timezone")
        now = self.clock()
        if scheduled_at < now + self.min_lead:
            raise ValidationError(
                f"rides must be scheduled at least "
                f"{settings.schedule_min_lead_minutes} minutes ahead"
            )
        if scheduled_at > now + self.max_ahead:
            raise ValidationError(
                f"rides can be scheduled at most "
                f"{settings.schedule_max_days_ahead} days ahead"
            )

        ride = ScheduledRideModel(
            id=f"sched_{uuid.uuid4().hex}",
            passenger_id=passenger.passenger_id,
            passenger_name=passenger.name or None,
            passenger_phone=passenger.phone or None,
            pickup_text=pickup.text,
            pickup_lat=pickup.location.latitude,
            pickup_lng=pickup.location.longitude,
            dropoff_text=dropoff.text,
            dropoff_lat=dropoff.location.latitude,
            dropoff_lng=dropoff.location.longitude,
            scheduled_at=scheduled_at,
            notes=notes,
            status=ScheduledRideStatus.SCHEDULED,
            created_at=now,
        )
        await self.rides.add(ride)
        await commit(self.session)
        ride = await self.rides.reload(ride)
        logger.info(
            "Ride %s scheduled by %s for %s",
            ride.id,
            ride.passenger_id,
            ride.scheduled_at.isoformat(),
        )
        return ride

    # ── Reads ─────────────────────────────────────────────────────────

    async def get(self, ride_id: str, ctx: SessionContext) -> ScheduledRideModel:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None or not _can_view(ride, ctx):
            raise NotFoundError(f"Scheduled ride {ride_id} not found")
        return ride

    async def list_rides(
        self, ctx: SessionContext, when: str = ALL
    ) -> list[ScheduledRideModel]:
        """
        The caller's rides.  Passengers see what they booked, drivers what
        they took on.  *when* narrows to upcoming (open, not yet due, soonest
        first) or past (closed or overdue, latest first).
        """
        ctx.require(Role.PASSENGER, Role.DRIVER)
        if when not in (ALL, UPCOMING, PAST):
            raise ValidationError(f"unknown ride filter {when!r}")

        if ctx.role is Role.DRIVER:
            rides = await self.rides.list_for_driver(
                ctx.user_id,
                (ScheduledRideStatus.ACCEPTED, ScheduledRideStatus.COMPLETED),
            )
        else:
            rides = await self.rides.list_for_passenger(ctx.user_id)

        now = self.clock()
        if when == UPCOMING:
            return [
                r for r in rides if r.status in OPEN_STATUSES and r.scheduled_at >= now
            ]
        if when == PAST:
            past = [
                r for r in rides if r.status in CLOSED_STATUSES or r.scheduled_at < now
            ]
            past.sort(key=lambda r: r.scheduled_at, reverse=True)
            return past
        return rides

    async def list_available(self, ctx: SessionContext) -> list[ScheduledRideModel]:
        """Future rides no driver has taken yet, soonest first."""
        ctx.require(Role.DRIVER, Role.ADMIN)
        return await self.rides.list_unassigned_after(self.clock())

    # ── Updates ───────────────────────────────────────────────────────

    async def accept(self, ride_id: str, ctx: SessionContext) -> ScheduledRideModel:
        ctx.require(Role.DRIVER)
        ride = await self.rides.get_by_id(ride_id)
        if ride is None:
            raise NotFoundError(f"Scheduled ride {ride_id} not found")
        if ride.status is ScheduledRideStatus.ACCEPTED and ride.driver_id == ctx.user_id:
            return ride
        if ride.status is ScheduledRideStatus.SCHEDULED and ride.scheduled_at <= self.clock():
            raise InvalidTransitionError(f"scheduled ride {ride.id} is already due")

        profile = await self.drivers.get_by_id(ctx.user_id)
        if profile is None:
            raise NotFoundError(f"Driver {ctx.user_id} has no profile")
        return await self._move(
            ride,
            ScheduledRideStatus.ACCEPTED,
            dict(
                driver_id=profile.id,
                driver_name=profile.full_name,
                driver_phone=profile.phone,
                driver_plate=profile.plate_number,
                accepted_at=self.clock(),
            ),
            ctx,
        )

    async def cancel(self, ride_id: str, ctx: SessionContext) -> ScheduledRideModel:
        ctx.require(Role.PASSENGER, Role.ADMIN)
        ride = await self.get(ride_id, ctx)
        return await self._move(
            ride, ScheduledRideStatus.CANCELLED, dict(cancelled_at=self.clock()), ctx
        )

    async def complete(self, ride_id: str, ctx: SessionContext) -> ScheduledRideModel:
        ctx.require(Role.DRIVER, Role.ADMIN)
        ride = await self.get(ride_id, ctx)
        if ctx.role is Role.DRIVER and ride.driver_id != ctx.user_id:
            raise ValidationError("only the assigned driver can complete this ride")
        return await self._move(
            ride, ScheduledRideStatus.COMPLETED, dict(completed_at=self.clock()), ctx
        )

    # ── Internals ─────────────────────────────────────────────────────

    async def _move(
        self,
        ride: ScheduledRideModel,
        target: ScheduledRideStatus,
        values: dict[str, Any],
        ctx: SessionContext,
    ) -> ScheduledRideModel:
        """Guarded status write; repeating a move that already happened is a no-op."""
        if _already(ride, target, ctx):
            return ride
        if target not in SCHEDULED_RIDE_TRANSITIONS[ride.status]:
            raise InvalidTransitionError(
                f"scheduled ride {ride.id} cannot go from "
                f"{ride.status.value} to {target.value}"
            )

        expected = ride.status
        if not await self.rides.apply(ride.id, expected, dict(values, status=target)):
            ride = await self.rides.reload(ride)
            if _already(ride, target, ctx):
                return ride
            raise InvalidTransitionError(
                f"scheduled ride {ride.id} moved to {ride.status.value} concurrently"
            )

        await commit(self.session)
        ride = await self.rides.reload(ride)
        logger.info(
            "Scheduled ride %s: %s -> %s by %s",
            ride.id,
            expected.value,
            target.value,
            ctx.user_id,
        )
        return ride


def _already(
    ride: ScheduledRideModel, target: ScheduledRideStatus, ctx: SessionContext
) -> bool:
    if ride.status is not target:
        return False
    # a ride taken by someone else is not this driver's to re-accept
    return target is not ScheduledRideStatus.ACCEPTED or ride.driver_id == ctx.user_id


def _can_view(ride: ScheduledRideModel, ctx: SessionContext) -> bool:
    if ctx.is_privileged:
        return True
    if ctx.role is Role.PASSENGER:
        return ride.passenger_id == ctx.user_id
    # drivers see their own rides plus anything still up for grabs
    return ride.driver_id == ctx.user_id or (
        ride.status is ScheduledRideStatus.SCHEDULED and ride.driver_id is None
    )
