"""
Fare endpoints
==============

POST /api/v1/fares/quote -- fare band for a distance under a zone tariff
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_clock, get_db
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import FareQuoteRequest, FareResponse
from src.infrastructure.clock import Clock
from src.services.fares import FareService

router = APIRouter(prefix="/fares", tags=["fares"])


@router.post("/quote", response_model=FareResponse, summary="Quote a fare")
@limiter.limit(RATE_LIMIT)
async def quote_fare(
    request: Request,
    body: FareQuoteRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    rate, estimate = await FareService(db, clock).quote(
        body.distance_km,
        zone_name=body.zone_name,
        at=body.at,
        is_senior_discount=body.is_senior_discount,
        is_pwd_discount=body.is_pwd_discount,
        is_errand=body.is_errand,
    )
    return FareResponse(
        min=float(estimate.min),
        max=float(estimate.max),
        base=float(estimate.base),
        discount_amount=float(estimate.discount_amount),
        discount_type=estimate.discount_type.value,
        zone_name=rate.name,
    )
