"""
Demand endpoints
================

GET  /api/v1/demand/areas        -- hot spots the forecast watches
POST /api/v1/demand/areas        -- add a hot spot (admin)
GET  /api/v1/demand/forecast     -- areas in their peak hour right now
GET  /api/v1/demand/suggestions  -- where drivers should head (drivers, admin)
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_clock, get_db, get_session_context
from src.api.middleware import RATE_LIMIT, limiter
from src.api.routes.admin import require_admin
from src.api.schemas import (
    DemandAreaRequest,
    DemandAreaResponse,
    DispatchSuggestionResponse,
    ForecastResponse,
)
from src.domain.entities import Location, SessionContext
from src.domain.enums import Role
from src.infrastructure.clock import Clock
from src.services.demand import DemandService

router = APIRouter(prefix="/demand", tags=["demand"])


def get_demand_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> DemandService:
    return DemandService(db, clock)


@router.get(
    "/areas",
    response_model=list[DemandAreaResponse],
    summary="List demand areas",
)
@limiter.limit(RATE_LIMIT)
async def list_areas(
    request: Request,
    service: DemandService = Depends(get_demand_service),
):
    return [DemandAreaResponse.from_area(a) for a in await service.list_areas()]


@router.post(
    "/areas",
    status_code=201,
    response_model=DemandAreaResponse,
    summary="Add a demand area",
)
@limiter.limit(RATE_LIMIT)
async def add_area(
    request: Request,
    body: DemandAreaRequest,
    ctx: SessionContext = Depends(require_admin),
    service: DemandService = Depends(get_demand_service),
):
    area = await service.add_area(
        ctx,
        body.name,
        body.kind,
        Location(latitude=body.lat, longitude=body.lng),
        body.radius_km,
        body.peak_hours,
        body.average_demand,
    )
    return DemandAreaResponse.from_area(area)


@router.get(
    "/forecast",
    response_model=list[ForecastResponse],
    summary="Areas expecting a rush this hour",
)
@limiter.limit(RATE_LIMIT)
async def forecast(
    request: Request,
    service: DemandService = Depends(get_demand_service),
):
    return [ForecastResponse.from_forecast(f) for f in await service.forecast()]


@router.get(
    "/suggestions",
    response_model=list[DispatchSuggestionResponse],
    summary="Where more drivers are needed",
)
@limiter.limit(RATE_LIMIT)
async def suggestions(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    service: DemandService = Depends(get_demand_service),
):
    ctx.require(Role.DRIVER, Role.ADMIN)
    return [
        DispatchSuggestionResponse.from_suggestion(s)
        for s in await service.suggestions()
    ]
