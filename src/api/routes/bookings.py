"""
Booking endpoints
=================

POST  /api/v1/bookings                   -- create a booking (enters SEARCHING)
GET   /api/v1/bookings                   -- the caller's trips, newest first
GET   /api/v1/bookings/active            -- the caller's non-terminal trip
GET   /api/v1/bookings/open              -- SEARCHING trips for drivers
GET   /api/v1/bookings/{trip_id}         -- one trip (search timeout evaluated)
PATCH /api/v1/bookings/{trip_id}         -- partial update incl. status
POST  /api/v1/bookings/{trip_id}/rating  -- post-trip rating
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_clock, get_db, get_geocoder, get_session_context
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    BookingCreateRequest,
    RatingRequest,
    TripResponse,
    TripUpdateRequest,
)
from src.domain.entities import PassengerInfo, SessionContext
from src.infrastructure.clock import Clock
from src.infrastructure.geocoding import Geocoder
from src.services.bookings import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    geocoder: Geocoder = Depends(get_geocoder),
) -> BookingService:
    return BookingService(db, clock, geocoder)


@router.post(
    "",
    status_code=201,
    response_model=TripResponse,
    summary="Create a booking",
    responses={201: {"description": "Trip persisted and searching for a driver."}},
)
@limiter.limit(RATE_LIMIT)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: BookingService = Depends(get_booking_service),
):
    trip = await service.create_booking(
        ctx,
        PassengerInfo(
            passenger_id=ctx.user_id,
            name=body.passenger_name,
            phone=body.passenger_phone,
        ),
        body.pickup.to_place(),
        body.dropoff.to_place(),
        distance_km=body.distance_km,
        preferred_driver_id=body.preferred_driver_id,
        ride_kind=body.ride_kind,
        notes=body.notes,
        zone_name=body.zone_name,
        is_senior_discount=body.is_senior_discount,
        is_pwd_discount=body.is_pwd_discount,
    )
    return TripResponse.from_model(trip)


@router.get("", response_model=list[TripResponse], summary="List my trips")
@limiter.limit(RATE_LIMIT)
async def list_trips(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    service: BookingService = Depends(get_booking_service),
):
    return [TripResponse.from_model(t) for t in await service.list_trips(ctx)]


@router.get(
    "/active",
    response_model=Optional[TripResponse],
    summary="Get my current non-terminal trip",
)
@limiter.limit(RATE_LIMIT)
async def get_active_trip(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    service: BookingService = Depends(get_booking_service),
):
    trip = await service.get_active_trip(ctx)
    return TripResponse.from_model(trip) if trip else None


@router.get(
    "/open",
    response_model=list[TripResponse],
    summary="List bookings waiting for a driver",
)
@limiter.limit(RATE_LIMIT)
async def list_open_bookings(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    service: BookingService = Depends(get_booking_service),
):
    return [TripResponse.from_model(t) for t in await service.list_open_bookings(ctx)]


@router.get("/{trip_id}", response_model=TripResponse, summary="Get a trip")
@limiter.limit(RATE_LIMIT)
async def get_trip(
    request: Request,
    trip_id: str,
    ctx: SessionContext = Depends(get_session_context),
    service: BookingService = Depends(get_booking_service),
):
    return TripResponse.from_model(await service.get_trip(trip_id, ctx))


@router.patch(
    "/{trip_id}",
    response_model=TripResponse,
    summary="Update a trip",
    description=(
        "Partial update.  Re-sending the status a trip already holds is a "
        "no-op; a transition the lifecycle does not allow returns 409."
    ),
)
@limiter.limit(RATE_LIMIT)
async def update_trip(
    request: Request,
    trip_id: str,
    body: TripUpdateRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: BookingService = Depends(get_booking_service),
):
    trip = await service.update_trip(trip_id, body.to_changes(), ctx)
    return TripResponse.from_model(trip)


@router.post(
    "/{trip_id}/rating",
    response_model=TripResponse,
    summary="Rate the other party of a completed trip",
)
@limiter.limit(RATE_LIMIT)
async def rate_trip(
    request: Request,
    trip_id: str,
    body: RatingRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: BookingService = Depends(get_booking_service),
):
    trip = await service.rate_trip(trip_id, ctx, body.rating, body.feedback)
    return TripResponse.from_model(trip)
