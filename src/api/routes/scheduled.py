"""
Scheduled ride endpoints
========================

POST /api/v1/scheduled-rides                      -- book a ride ahead of time
GET  /api/v1/scheduled-rides?when=upcoming|past    -- the caller's rides
GET  /api/v1/scheduled-rides/available             -- untaken rides for drivers
GET  /api/v1/scheduled-rides/{ride_id}             -- one ride
POST /api/v1/scheduled-rides/{ride_id}/accept      -- driver takes the ride
POST /api/v1/scheduled-rides/{ride_id}/cancel      -- passenger calls it off
POST /api/v1/scheduled-rides/{ride_id}/complete    -- driver closes it
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_clock, get_db, get_session_context
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import ScheduledRideCreateRequest, ScheduledRideResponse
from src.domain.entities import PassengerInfo, SessionContext
from src.infrastructure.clock import Clock
from src.services.scheduling import ALL, ScheduledRideService

router = APIRouter(prefix="/scheduled-rides", tags=["scheduled-rides"])


def get_scheduled_ride_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ScheduledRideService:
    return ScheduledRideService(db, clock)


@router.post(
    "",
    status_code=201,
    response_model=ScheduledRideResponse,
    summary="Schedule a ride",
)
@limiter.limit(RATE_LIMIT)
async def create_scheduled_ride(
    request: Request,
    body: ScheduledRideCreateRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: ScheduledRideService = Depends(get_scheduled_ride_service),
):
    ride = await service.create(
        ctx,
        PassengerInfo(
            passenger_id=ctx.user_id,
            name=body.passenger_name,
            phone=body.passenger_phone,
        ),
        body.pickup.to_place(),
        body.dropoff.to_place(),
        body.scheduled_at,
        notes=body.notes,
    )
    return ScheduledRideResponse.model_validate(ride)


@router.get(
    "",
    response_model=list[ScheduledRideResponse],
    summary="List my scheduled rides",
)
@limiter.limit(RATE_LIMIT)
async def list_scheduled_rides(
    request: Request,
    when: str = Query(ALL, pattern="^(all|upcoming|past)$"),
    ctx: SessionContext = Depends(get_session_context),
    service: ScheduledRideService = Depends(get_scheduled_ride_service),
):
    rides = await service.list_rides(ctx, when)
    return [ScheduledRideResponse.model_validate(r) for r in rides]


@router.get(
    "/available",
    response_model=list[ScheduledRideResponse],
    summary="Scheduled rides still waiting for a driver",
)
@limiter.limit(RATE_LIMIT)
async def list_available_rides(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    service: ScheduledRideService = Depends(get_scheduled_ride_service),
):
    rides = await service.list_available(ctx)
    return [ScheduledRideResponse.model_validate(r) for r in rides]


@router.get(
    "/{ride_id}",
    response_model=ScheduledRideResponse,
    summary="Get a scheduled ride",
)
@limiter.limit(RATE_LIMIT)
async def get_scheduled_ride(
    request: Request,
    ride_id: str,
    ctx: SessionContext = Depends(get_session_context),
    service: ScheduledRideService = Depends(get_scheduled_ride_service),
):
    return ScheduledRideResponse.model_validate(await service.get(ride_id, ctx))


@router.post(
    "/{ride_id}/accept",
    response_model=ScheduledRideResponse,
    summary="Take a scheduled ride",
)
@limiter.limit(RATE_LIMIT)
async def accept_scheduled_ride(
    request: Request,
    ride_id: str,
    ctx: SessionContext = Depends(get_session_context),
    service: ScheduledRideService = Depends(get_scheduled_ride_service),
):
    return ScheduledRideResponse.model_validate(await service.accept(ride_id, ctx))


@router.post(
    "/{ride_id}/cancel",
    response_model=ScheduledRideResponse,
    summary="Cancel a scheduled ride",
)
@limiter.limit(RATE_LIMIT)
async def cancel_scheduled_ride(
    request: Request,
    ride_id: str,
    ctx: SessionContext = Depends(get_session_context),
    service: ScheduledRideService = Depends(get_scheduled_ride_service),
):
    return ScheduledRideResponse.model_validate(await service.cancel(ride_id, ctx))


@router.post(
    "/{ride_id}/complete",
    response_model=ScheduledRideResponse,
    summary="Mark a scheduled ride done",
)
@limiter.limit(RATE_LIMIT)
async def complete_scheduled_ride(
    request: Request,
    ride_id: str,
    ctx: SessionContext = Depends(get_session_context),
    service: ScheduledRideService = Depends(get_scheduled_ride_service),
):
    return ScheduledRideResponse.model_validate(await service.complete(ride_id, ctx))
