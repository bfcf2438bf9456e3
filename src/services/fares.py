"""
Fare quoting and zone tariff administration.

Quotes go through the pure ``fare`` function with the zone's active tariff;
zones without a tariff row fall back to the configured default zone.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.errors import ValidationError
from src.domain.pricing import FareEngine, FareEstimate, ZoneRate, to_decimal
from src.infrastructure.clock import Clock, utcnow
from src.infrastructure.database import commit
from src.infrastructure.models import ZoneRateModel
from src.infrastructure.repositories import ZoneRateRepository

logger = logging.getLogger(__name__)


def default_zone_rate() -> ZoneRate:
    return ZoneRate.of(
        settings.default_zone,
        settings.base_fare,
        settings.rate_per_km,
        settings.minimum_fare,
        settings.night_surcharge,
    )


def build_engine() -> FareEngine:
    return FareEngine(
        default_zone_rate(),
        night_start_hour=settings.night_start_hour,
        night_end_hour=settings.night_end_hour,
        timezone=settings.local_timezone,
    )


def _as_rate(row: ZoneRateModel) -> ZoneRate:
    return ZoneRate.of(
        row.zone_name,
        row.base_fare,
        row.rate_per_km,
        row.minimum_fare,
        row.night_surcharge,
    )


class FareService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock
        self.rates = ZoneRateRepository(session)
        self.engine = build_engine()

    async def zone_rate(self, zone_name: Optional[str] = None) -> ZoneRate:
        name = zone_name or settings.default_zone
        row = await self.rates.get_active(name)
        if row is not None:
            return _as_rate(row)
        if name != settings.default_zone:
            logger.info("No tariff for zone %r, using %r", name, settings.default_zone)
            row = await self.rates.get_active(settings.default_zone)
            if row is not None:
                return _as_rate(row)
        return self.engine.default_rate

    async def quote(
        self,
        distance_km: float,
        *,
        zone_name: Optional[str] = None,
        at: Optional[datetime] = None,
        is_senior_discount: bool = False,
        is_pwd_discount: bool = False,
        is_errand: bool = False,
    ) -> tuple[ZoneRate, FareEstimate]:
        rate = await self.zone_rate(zone_name)
        estimate = self.engine.quote(
            distance_km,
            at=at or self.clock(),
            zone_rate=rate,
            is_senior_discount=is_senior_discount,
            is_pwd_discount=is_pwd_discount,
            is_errand=is_errand,
        )
        return rate, estimate

    async def set_zone_rate(
        self,
        zone_name: str,
        base_fare: Decimal | float,
        rate_per_km: Decimal | float,
        minimum_fare: Decimal | float,
        night_surcharge: Decimal | float = 0,
    ) -> ZoneRateModel:
        """Install a new tariff for *zone_name*; the previous one is kept inactive."""
        if not zone_name.strip():
            raise ValidationError("zone name is required")
        amounts = [to_decimal(v) for v in (base_fare, rate_per_km, minimum_fare, night_surcharge)]
        if any(a < 0 for a in amounts):
            raise ValidationError("tariff amounts must not be negative")

        row = await self.rates.replace(
            ZoneRateModel(
                zone_name=zone_name.strip(),
                base_fare=amounts[0],
                rate_per_km=amounts[1],
                minimum_fare=amounts[2],
                night_surcharge=amounts[3],
                effective_date=self.clock(),
            )
        )
        await commit(self.session)
        logger.info("Tariff for zone %s set to %s", row.zone_name, amounts)
        return row

    async def list_zone_rates(self) -> list[ZoneRateModel]:
        return await self.rates.list_active()
