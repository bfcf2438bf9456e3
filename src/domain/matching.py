"""
Nearest-Driver Dispatch Ranking
===============================

1. **Spatial Binning**  -- every registry entry carries the H3 cell of its
   last position.  A radius query turns into an ``IN (...)`` over the grid
   disk around the pickup cell, so the SQL side only reads nearby rows.
2. **Eligibility**      -- status ``available``, online, valid coordinates,
   heartbeat inside the freshness window.  A stale heartbeat overrides any
   stored "available" flag.
3. **Ranking**          -- Haversine distance from the pickup, nearest first,
   optionally capped to the top N.

Complexity
----------
Let N = candidate rows returned by the store.

* Eligibility + distance: O(N)
* Ranking:                O(N log N)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

import h3

from .distance import haversine_km, valid_coordinates
from .entities import Location
from .enums import DriverStatus
from .errors import StaleDataError

logger = logging.getLogger(__name__)

# Mean H3 hexagon edge length in km, per resolution.
_H3_EDGE_KM = {
    5: 8.544,
    6: 3.229,
    7: 1.220,
    8: 0.461,
    9: 0.174,
    10: 0.066,
}


class DriverEntry(Protocol):
    driver_id: str
    latitude: float
    longitude: float
    is_online: bool
    status: DriverStatus
    last_updated: datetime


@dataclass(frozen=True)
class RankedDriver:
    entry: DriverEntry
    distance_km: float


def location_cell(lat: float, lng: float, resolution: int = 8) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def cells_within(
    lat: float, lng: float, radius_km: float, resolution: int = 8
) -> set[str]:
    """H3 cells that cover a circle of *radius_km* around the point."""
    edge = _H3_EDGE_KM.get(resolution)
    if edge is None:
        raise ValueError(f"unsupported H3 resolution {resolution}")
    # one ring per ~1.5 edge lengths, plus one to cover the partial border ring
    k = math.ceil(radius_km / (edge * 1.5)) + 1
    return set(h3.grid_disk(location_cell(lat, lng, resolution), k))


def ensure_dispatchable(
    entry: DriverEntry, now: datetime, freshness: timedelta
) -> None:
    """Raise ``StaleDataError`` when the heartbeat is too old to trust."""
    if now - entry.last_updated > freshness:
        raise StaleDataError(
            f"driver {entry.driver_id} last seen {entry.last_updated.isoformat()}"
        )


def is_eligible(entry: DriverEntry) -> bool:
    return (
        entry.is_online
        and entry.status is DriverStatus.AVAILABLE
        and valid_coordinates(entry.latitude, entry.longitude)
    )


def rank_candidates(
    entries: Iterable[DriverEntry],
    pickup: Location,
    now: datetime,
    freshness: timedelta = timedelta(minutes=10),
    limit: Optional[int] = None,
    radius_km: Optional[float] = None,
) -> list[RankedDriver]:
    """Filter *entries* down to dispatchable drivers, nearest first."""
    ranked: list[RankedDriver] = []
    for entry in entries:
        if not is_eligible(entry):
            continue
        try:
            ensure_dispatchable(entry, now, freshness)
        except StaleDataError as exc:
            logger.debug("Skipping stale driver: %s", exc)
            continue

        distance = haversine_km(
            pickup.latitude, pickup.longitude, entry.latitude, entry.longitude
        )
        if radius_km is not None and distance > radius_km:
            continue
        ranked.append(RankedDriver(entry=entry, distance_km=distance))

    # driver id breaks ties so equal distances rank the same way every time
    ranked.sort(key=lambda r: (r.distance_km, r.entry.driver_id))
    if limit is not None:
        ranked = ranked[:limit]
    return ranked
