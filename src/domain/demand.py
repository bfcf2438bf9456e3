"""
Predictive Demand Dispatching
=============================

1. **Histogram**    -- past bookings are binned by (H3 cell of the pickup,
                       local hour the booking was made).
2. **Forecast**     -- an area is hot when the current local hour is one of
                       its peak hours.  Expected bookings per hour blend the
                       area's baseline with the bookings the histogram puts
                       inside its radius at that hour:
                       ``(baseline + history) / 2``, or the baseline alone
                       when there is no history.
3. **Suggestions**  -- one driver per 2.5 expected bookings.  An area short
                       of that gets a suggestion; the shortfall sets the
                       priority (3 or more high, 2 medium, 1 low).

Complexity
----------
Let B = histogram bins, A = areas, D = online drivers.

* Forecast:    O(B x A + A log A)
* Suggestions: O(A x D)
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol
from zoneinfo import ZoneInfo

import h3

from .distance import haversine_km, valid_coordinates
from .entities import Location
from .enums import DemandAreaKind, SuggestionPriority
from .matching import location_cell

BOOKINGS_PER_DRIVER = 2.5

_PRIORITY_RANK = {
    SuggestionPriority.HIGH: 3,
    SuggestionPriority.MEDIUM: 2,
    SuggestionPriority.LOW: 1,
}


@dataclass(frozen=True)
class DemandArea:
    """A place with predictable rush hours (school, market, terminal...)."""

    id: str
    name: str
    kind: DemandAreaKind
    location: Location
    radius_km: float
    peak_hours: frozenset[int]
    average_demand: float  # bookings per peak hour


@dataclass(frozen=True)
class Forecast:
    area: DemandArea
    expected_demand: float
    historical_bookings: int


@dataclass(frozen=True)
class DispatchSuggestion:
    area: DemandArea
    suggested_drivers: int
    current_drivers: int
    priority: SuggestionPriority
    reason: str

    @property
    def needed_drivers(self) -> int:
        return self.suggested_drivers - self.current_drivers


class Booking(Protocol):
    pickup_lat: float
    pickup_lng: float
    created_at: Optional[datetime]


class Positioned(Protocol):
    latitude: float
    longitude: float


# Lopez, Quezon hot spots used until an operator stores its own areas.
DEFAULT_AREAS: tuple[DemandArea, ...] = (
    DemandArea(
        id="school_1",
        name="Lopez Central Elementary School",
        kind=DemandAreaKind.SCHOOL,
        location=Location(13.8844, 122.2603),
        radius_km=0.5,
        peak_hours=frozenset({6, 7, 12, 13, 16, 17}),
        average_demand=15,
    ),
    DemandArea(
        id="market_1",
        name="Lopez Public Market",
        kind=DemandAreaKind.MARKET,
        location=Location(13.8840, 122.2600),
        radius_km=0.3,
        peak_hours=frozenset({7, 8, 9, 10, 15, 16, 17}),
        average_demand=20,
    ),
    DemandArea(
        id="terminal_1",
        name="Lopez Terminal",
        kind=DemandAreaKind.TERMINAL,
        location=Location(13.8845, 122.2605),
        radius_km=0.4,
        peak_hours=frozenset({5, 6, 7, 8, 17, 18, 19}),
        average_demand=25,
    ),
)


def local_hour(at: datetime, timezone: str) -> int:
    return at.astimezone(ZoneInfo(timezone)).hour


def demand_histogram(
    bookings: Iterable[Booking], timezone: str, resolution: int = 10
) -> Counter[tuple[str, int]]:
    """Count bookings per (pickup cell, local hour)."""
    counts: Counter[tuple[str, int]] = Counter()
    for booking in bookings:
        if booking.created_at is None:
            continue
        if not valid_coordinates(booking.pickup_lat, booking.pickup_lng):
            continue
        cell = location_cell(booking.pickup_lat, booking.pickup_lng, resolution)
        counts[(cell, local_hour(booking.created_at, timezone))] += 1
    return counts


def _near(area: DemandArea, lat: float, lng: float) -> bool:
    distance = haversine_km(
        area.location.latitude, area.location.longitude, lat, lng
    )
    return distance <= area.radius_km


def predict_high_demand_areas(
    areas: Iterable[DemandArea],
    histogram: Counter[tuple[str, int]],
    hour: int,
) -> list[Forecast]:
    """Areas in their peak hour, busiest first."""
    centres = {
        cell: h3.cell_to_latlng(cell) for cell, at_hour in histogram if at_hour == hour
    }
    forecasts = []
    for area in areas:
        if hour not in area.peak_hours:
            continue
        history = sum(
            histogram[(cell, hour)]
            for cell, (lat, lng) in centres.items()
            if _near(area, lat, lng)
        )
        expected = area.average_demand
        if history:
            expected = (area.average_demand + history) / 2
        forecasts.append(Forecast(area, expected, history))

    forecasts.sort(key=lambda f: f.expected_demand, reverse=True)
    return forecasts


def _priority(needed: int) -> SuggestionPriority:
    if needed >= 3:
        return SuggestionPriority.HIGH
    if needed >= 2:
        return SuggestionPriority.MEDIUM
    return SuggestionPriority.LOW


def generate_dispatching_suggestions(
    forecasts: Iterable[Forecast], drivers: Iterable[Positioned]
) -> list[DispatchSuggestion]:
    """Where more drivers should wait, most urgent first."""
    drivers = list(drivers)
    suggestions = []
    for forecast in forecasts:
        area = forecast.area
        current = sum(1 for d in drivers if _near(area, d.latitude, d.longitude))
        suggested = math.ceil(forecast.expected_demand / BOOKINGS_PER_DRIVER)
        if suggested - current <= 0:
            continue
        suggestions.append(
            DispatchSuggestion(
                area=area,
                suggested_drivers=suggested,
                current_drivers=current,
                priority=_priority(suggested - current),
                reason=(
                    f"High demand expected at {area.name} ({area.kind.value}) "
                    "during current peak hours"
                ),
            )
        )

    # stable: busier areas stay ahead within a priority
    suggestions.sort(key=lambda s: _PRIORITY_RANK[s.priority], reverse=True)
    return suggestions
