"""
Driver endpoints
================

PUT    /api/v1/drivers/{driver_id}             -- create / update profile
PUT    /api/v1/drivers/{driver_id}/location    -- heartbeat (position + status)
PATCH  /api/v1/drivers/{driver_id}/status      -- change status only
DELETE /api/v1/drivers/{driver_id}/location    -- logout: drop registry entry
GET    /api/v1/drivers/available               -- nearest fresh drivers
GET    /api/v1/drivers/{driver_id}/safety      -- derived safety record
POST   /api/v1/drivers/{driver_id}/incidents   -- append an incident
POST   /api/v1/drivers/{driver_id}/complaints  -- append a complaint
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_clock, get_db, get_session_context
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    AvailableDriverResponse,
    ComplaintRequest,
    DriverLocationResponse,
    DriverProfileRequest,
    DriverProfileResponse,
    DriverStatusRequest,
    HeartbeatRequest,
    IncidentRequest,
    SafetyRecordResponse,
)
from src.config import settings
from src.domain.entities import Location, SessionContext
from src.domain.enums import Role
from src.domain.errors import ValidationError
from src.infrastructure.clock import Clock
from src.services.dispatch import DispatchService
from src.services.safety import SafetyService

router = APIRouter(prefix="/drivers", tags=["drivers"])


def get_dispatch_service(
    db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)
) -> DispatchService:
    return DispatchService(db, clock)


def get_safety_service(
    db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)
) -> SafetyService:
    return SafetyService(db, clock)


def _require_self(ctx: SessionContext, driver_id: str) -> None:
    if ctx.role is Role.ADMIN:
        return
    if ctx.role is not Role.DRIVER or ctx.user_id != driver_id:
        raise ValidationError(f"{ctx.user_id} may not act for driver {driver_id}")


@router.put(
    "/{driver_id}",
    response_model=DriverProfileResponse,
    summary="Create or update a driver profile",
)
@limiter.limit(RATE_LIMIT)
async def upsert_profile(
    request: Request,
    driver_id: str,
    body: DriverProfileRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: DispatchService = Depends(get_dispatch_service),
):
    _require_self(ctx, driver_id)
    return await service.register_driver(
        driver_id,
        body.full_name,
        phone=body.phone,
        email=body.email,
        plate_number=body.plate_number,
    )


@router.put(
    "/{driver_id}/location",
    response_model=DriverLocationResponse,
    summary="Driver heartbeat",
)
@limiter.limit(RATE_LIMIT)
async def heartbeat(
    request: Request,
    driver_id: str,
    body: HeartbeatRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: DispatchService = Depends(get_dispatch_service),
):
    _require_self(ctx, driver_id)
    return await service.upsert_location(
        driver_id,
        Location(latitude=body.lat, longitude=body.lng),
        is_online=body.is_online,
        status=body.status,
    )


@router.patch("/{driver_id}/status", status_code=204, summary="Set driver status")
@limiter.limit(RATE_LIMIT)
async def set_status(
    request: Request,
    driver_id: str,
    body: DriverStatusRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: DispatchService = Depends(get_dispatch_service),
):
    _require_self(ctx, driver_id)
    await service.set_status(driver_id, body.status)
    return Response(status_code=204)


@router.delete("/{driver_id}/location", status_code=204, summary="Driver logout")
@limiter.limit(RATE_LIMIT)
async def logout(
    request: Request,
    driver_id: str,
    ctx: SessionContext = Depends(get_session_context),
    service: DispatchService = Depends(get_dispatch_service),
):
    _require_self(ctx, driver_id)
    await service.remove(driver_id)
    return Response(status_code=204)


@router.get(
    "/available",
    response_model=list[AvailableDriverResponse],
    summary="Available drivers near a pickup point, nearest first",
)
@limiter.limit(RATE_LIMIT)
async def get_available_drivers(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    limit: int = Query(settings.dispatch_default_limit, ge=1, le=100),
    radius_km: Optional[float] = Query(None, gt=0, le=50),
    service: DispatchService = Depends(get_dispatch_service),
):
    ranked = await service.get_available_drivers(
        Location(latitude=lat, longitude=lng), limit=limit, radius_km=radius_km
    )
    return [
        AvailableDriverResponse(
            driver=DriverLocationResponse.model_validate(r.entry),
            distance_km=round(r.distance_km, 3),
        )
        for r in ranked
    ]


@router.get(
    "/{driver_id}/safety",
    response_model=SafetyRecordResponse,
    summary="Driver safety record (recomputed on every call)",
)
@limiter.limit(RATE_LIMIT)
async def get_safety_record(
    request: Request,
    driver_id: str,
    service: SafetyService = Depends(get_safety_service),
):
    record = await service.get_driver_safety_record(driver_id)
    return SafetyRecordResponse.from_record(record)


@router.post(
    "/{driver_id}/incidents",
    status_code=204,
    summary="Report an incident (refreshes the safety record)",
)
@limiter.limit(RATE_LIMIT)
async def report_incident(
    request: Request,
    driver_id: str,
    body: IncidentRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: SafetyService = Depends(get_safety_service),
):
    await service.report_incident(
        driver_id=driver_id,
        type=body.type,
        description=body.description,
        reported_by=ctx.user_id,
        severity=body.severity,
        occurred_at=body.occurred_at,
    )
    return Response(status_code=204)


@router.post(
    "/{driver_id}/complaints",
    status_code=204,
    summary="File a complaint (refreshes the safety record)",
)
@limiter.limit(RATE_LIMIT)
async def report_complaint(
    request: Request,
    driver_id: str,
    body: ComplaintRequest,
    ctx: SessionContext = Depends(get_session_context),
    service: SafetyService = Depends(get_safety_service),
):
    await service.report_complaint(
        driver_id=driver_id,
        type=body.type,
        description=body.description,
        reported_by=ctx.user_id,
        trip_id=body.trip_id,
        occurred_at=body.occurred_at,
    )
    return Response(status_code=204)
