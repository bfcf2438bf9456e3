"""
Admin / maintenance endpoints
=============================

GET  /api/v1/admin/health                  -- simple health check
POST /api/v1/admin/reconcile               -- repair driver status hints now
POST /api/v1/admin/expire-searches         -- cancel timed-out searches now
GET  /api/v1/admin/zone-rates              -- active tariff per zone
PUT  /api/v1/admin/zone-rates/{zone_name}  -- install a new tariff
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_clock, get_db, get_session_context
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    ExpiryResponse,
    HealthResponse,
    ReconciliationResponse,
    ZoneRateRequest,
    ZoneRateResponse,
)
from src.domain.entities import SessionContext
from src.domain.enums import Role
from src.infrastructure.clock import Clock
from src.services.bookings import BookingService
from src.services.dispatch import DispatchService
from src.services.fares import FareService

router = APIRouter(prefix="/admin", tags=["admin"])


async def require_admin(
    ctx: SessionContext = Depends(get_session_context),
) -> SessionContext:
    ctx.require(Role.ADMIN)
    return ctx


@router.post(
    "/reconcile",
    response_model=ReconciliationResponse,
    summary="Align driver registry status with active trips",
)
@limiter.limit(RATE_LIMIT)
async def reconcile(
    request: Request,
    _: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    report = await DispatchService(db, clock).reconcile()
    return ReconciliationResponse(released=report.released, occupied=report.occupied)


@router.post(
    "/expire-searches",
    response_model=ExpiryResponse,
    summary="Cancel searching trips past the timeout",
)
@limiter.limit(RATE_LIMIT)
async def expire_searches(
    request: Request,
    _: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    cancelled = await BookingService(db, clock).expire_stale_searches()
    return ExpiryResponse(cancelled=cancelled)


@router.get(
    "/zone-rates",
    response_model=list[ZoneRateResponse],
    summary="List active zone tariffs",
)
@limiter.limit(RATE_LIMIT)
async def list_zone_rates(
    request: Request,
    _: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await FareService(db).list_zone_rates()
    return [ZoneRateResponse.from_model(r) for r in rows]


@router.put(
    "/zone-rates/{zone_name}",
    response_model=ZoneRateResponse,
    summary="Install a new tariff for a zone",
)
@limiter.limit(RATE_LIMIT)
async def set_zone_rate(
    request: Request,
    zone_name: str,
    body: ZoneRateRequest,
    _: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    row = await FareService(db, clock).set_zone_rate(
        zone_name,
        body.base_fare,
        body.rate_per_km,
        body.minimum_fare,
        body.night_surcharge,
    )
    return ZoneRateResponse.from_model(row)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
