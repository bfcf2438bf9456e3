"""
Deterministic Fare Engine  (Strategy Pattern)
=============================================

Formula
-------
Base     = (Flag_Down + Distance x Rate_Per_KM + Night_Surcharge) x Errand_Multiplier
Discount = Base x 20 %   (senior citizen, else PWD, else none)
Net      = Base - Discount
Band     = [Net x 0.95, Net x 1.05]  rounded half-up to whole pesos,
           each end floored at the zone minimum fare

* **Errand_Multiplier** = 1.20 for errand (pasabay / padala) rides, else 1.00
* Senior and PWD concessions are mutually exclusive; senior wins.

The result is frozen onto the trip at booking time and used in billing
disputes, so everything here is ``Decimal`` arithmetic with no I/O.

Complexity: O(1) per fare.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from .enums import DiscountType
from .errors import ValidationError

ERRAND_MULTIPLIER = Decimal("1.20")
CONCESSION_RATE = Decimal("0.20")
BAND_VARIANCE = Decimal("0.05")
# Longest trip a tariff is quoted for
MAX_DISTANCE_KM = Decimal("1000")

_PESO = Decimal("1")
_CENTAVO = Decimal("0.01")


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    """Exact decimal for *value*; floats go through ``str`` to drop binary noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class ZoneRate:
    """Tariff for one service zone (barangay / municipality)."""

    name: str
    base_fare: Decimal
    rate_per_km: Decimal
    minimum_fare: Decimal
    night_surcharge: Decimal = Decimal("0")

    @classmethod
    def of(
        cls,
        name: str,
        base_fare: float | Decimal,
        rate_per_km: float | Decimal,
        minimum_fare: float | Decimal,
        night_surcharge: float | Decimal = 0,
    ) -> ZoneRate:
        return cls(
            name=name,
            base_fare=to_decimal(base_fare),
            rate_per_km=to_decimal(rate_per_km),
            minimum_fare=to_decimal(minimum_fare),
            night_surcharge=to_decimal(night_surcharge),
        )


@dataclass(frozen=True)
class FareEstimate:
    min: Decimal
    max: Decimal
    base: Decimal
    discount_amount: Decimal
    discount_type: DiscountType

    @property
    def net(self) -> Decimal:
        """Point fare shown to the rider: base less the concession."""
        return self.base - self.discount_amount


# ── Discount strategies ───────────────────────────────────────────────


class DiscountStrategy(ABC):
    discount_type: DiscountType

    @abstractmethod
    def discount(self, base: Decimal) -> Decimal: ...


class NoDiscount(DiscountStrategy):
    discount_type = DiscountType.NONE

    def discount(self, base: Decimal) -> Decimal:
        return Decimal("0")


class ConcessionDiscount(DiscountStrategy):
    """Statutory 20 % senior-citizen / PWD fare concession."""

    def __init__(self, discount_type: DiscountType):
        self.discount_type = discount_type

    def discount(self, base: Decimal) -> Decimal:
        return base * CONCESSION_RATE


def select_discount(
    is_senior_discount: bool, is_pwd_discount: bool
) -> DiscountStrategy:
    if is_senior_discount:
        return ConcessionDiscount(DiscountType.SENIOR)
    if is_pwd_discount:
        return ConcessionDiscount(DiscountType.PWD)
    return NoDiscount()


# ── Pure fare function ────────────────────────────────────────────────


def fare(
    distance_km: float | Decimal,
    zone_rate: ZoneRate,
    is_night_trip: bool = False,
    is_senior_discount: bool = False,
    is_pwd_discount: bool = False,
    is_errand: bool = False,
) -> FareEstimate:
    """Compute the fare band for one trip.  Identical inputs, identical output."""
    distance = to_decimal(distance_km)
    if not distance.is_finite() or not 0 <= distance <= MAX_DISTANCE_KM:
        raise ValidationError(
            f"distance must be between 0 and {MAX_DISTANCE_KM} km, got {distance_km}"
        )

    base = zone_rate.base_fare + distance * zone_rate.rate_per_km
    if is_night_trip:
        base += zone_rate.night_surcharge
    if is_errand:
        base *= ERRAND_MULTIPLIER

    strategy = select_discount(is_senior_discount, is_pwd_discount)
    discount = strategy.discount(base)
    net = base - discount

    floor = max(zone_rate.minimum_fare.quantize(_PESO, ROUND_HALF_UP), _PESO)
    low = (net * (1 - BAND_VARIANCE)).quantize(_PESO, ROUND_HALF_UP)
    high = (net * (1 + BAND_VARIANCE)).quantize(_PESO, ROUND_HALF_UP)

    return FareEstimate(
        min=max(low, floor),
        max=max(high, floor),
        base=base.quantize(_CENTAVO, ROUND_HALF_UP),
        discount_amount=discount.quantize(_CENTAVO, ROUND_HALF_UP),
        discount_type=strategy.discount_type,
    )


def is_night_trip(
    at: datetime,
    start_hour: int = 22,
    end_hour: int = 5,
    timezone: str = "Asia/Manila",
) -> bool:
    """Night tariff applies from *start_hour* until *end_hour* local time."""
    hour = at.astimezone(ZoneInfo(timezone)).hour
    if start_hour <= end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour


# ── Engine facade ─────────────────────────────────────────────────────


class FareEngine:
    """High-level API used by the booking service and the API layer."""

    def __init__(
        self,
        default_rate: ZoneRate,
        night_start_hour: int = 22,
        night_end_hour: int = 5,
        timezone: str = "Asia/Manila",
    ):
        self.default_rate = default_rate
        self.night_start_hour = night_start_hour
        self.night_end_hour = night_end_hour
        self.timezone = timezone

    def quote(
        self,
        distance_km: float | Decimal,
        *,
        at: datetime,
        zone_rate: ZoneRate | None = None,
        is_senior_discount: bool = False,
        is_pwd_discount: bool = False,
        is_errand: bool = False,
    ) -> FareEstimate:
        night = is_night_trip(
            at, self.night_start_hour, self.night_end_hour, self.timezone
        )
        return fare(
            distance_km,
            zone_rate or self.default_rate,
            is_night_trip=night,
            is_senior_discount=is_senior_discount,
            is_pwd_discount=is_pwd_discount,
            is_errand=is_errand,
        )
