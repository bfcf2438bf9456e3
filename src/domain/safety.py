"""
Driver Safety Badge
===================

The badge is recomputed from full history every time; nothing is kept as a
running counter.  Rules are checked in order and the first match wins:

1. **RED**    average rating < 3.5, more than 2 incidents, more than 3
              complaints, or any incident in the last 30 days.
2. **YELLOW** fewer than 20 completed rides, or registered less than 30
              days ago (new-driver grace).
3. **GREEN**  at least 50 completed rides, average rating >= 4.5, no
              incident in the last 90 days, at most one complaint in the
              last 30 days.
4. **YELLOW** otherwise.

Windows are measured from ``now``, so a badge can change with no new event
(e.g. a driver ageing past the 30-day grace period).

Only ratings passengers gave on completed trips count towards the average;
missing and zero ratings are skipped rather than counted as zero.  A driver
with no ratings at all averages 0, so until the first rating arrives the
low-rating rule holds them at RED.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

from .enums import SafetyBadge, TripStatus

RED_MAX_AVERAGE = 3.5
RED_MAX_INCIDENTS = 2
RED_MAX_COMPLAINTS = 3
RED_INCIDENT_WINDOW = timedelta(days=30)

NEW_DRIVER_MIN_RIDES = 20
NEW_DRIVER_GRACE = timedelta(days=30)

GREEN_MIN_RIDES = 50
GREEN_MIN_AVERAGE = 4.5
GREEN_INCIDENT_WINDOW = timedelta(days=90)
GREEN_COMPLAINT_WINDOW = timedelta(days=30)
GREEN_MAX_RECENT_COMPLAINTS = 1


class RatedTrip(Protocol):
    status: TripStatus
    rating_for_driver: Optional[int]
    completed_at: Optional[datetime]


class Dated(Protocol):
    occurred_at: datetime


@dataclass(frozen=True)
class SafetyRecord:
    driver_id: str
    badge: SafetyBadge
    total_rides: int
    average_rating: float
    incidents: int
    complaints: int
    registration_date: datetime
    last_incident_date: Optional[datetime]
    last_trip_completed_at: Optional[datetime]
    computed_at: datetime


def average_rating(trips: Iterable[RatedTrip]) -> float:
    ratings = sorted(
        t.rating_for_driver
        for t in trips
        if t.status is TripStatus.COMPLETED and t.rating_for_driver
    )
    if not ratings:
        return 0.0
    return sum(ratings) / len(ratings)


def _within(events: Iterable[Dated], now: datetime, window: timedelta) -> int:
    return sum(1 for e in events if now - e.occurred_at <= window)


def classify(
    *,
    total_rides: int,
    average: float,
    incidents: list[Dated],
    complaints: list[Dated],
    registration_date: datetime,
    now: datetime,
) -> SafetyBadge:
    if (
        average < RED_MAX_AVERAGE
        or len(incidents) > RED_MAX_INCIDENTS
        or len(complaints) > RED_MAX_COMPLAINTS
        or _within(incidents, now, RED_INCIDENT_WINDOW) > 0
    ):
        return SafetyBadge.RED

    if (
        total_rides < NEW_DRIVER_MIN_RIDES
        or now - registration_date < NEW_DRIVER_GRACE
    ):
        return SafetyBadge.YELLOW

    if (
        total_rides >= GREEN_MIN_RIDES
        and average >= GREEN_MIN_AVERAGE
        and _within(incidents, now, GREEN_INCIDENT_WINDOW) == 0
        and _within(complaints, now, GREEN_COMPLAINT_WINDOW)
        <= GREEN_MAX_RECENT_COMPLAINTS
    ):
        return SafetyBadge.GREEN

    return SafetyBadge.YELLOW


def compute_safety_record(
    driver_id: str,
    trips: Iterable[RatedTrip],
    incidents: Iterable[Dated],
    complaints: Iterable[Dated],
    registration_date: datetime,
    now: datetime,
) -> SafetyRecord:
    """Derive the full record.  Pure: same inputs, same record."""
    completed = [t for t in trips if t.status is TripStatus.COMPLETED]
    incident_list = sorted(incidents, key=lambda i: i.occurred_at)
    complaint_list = list(complaints)
    average = average_rating(completed)

    badge = classify(
        total_rides=len(completed),
        average=average,
        incidents=incident_list,
        complaints=complaint_list,
        registration_date=registration_date,
        now=now,
    )
    finished = [t.completed_at for t in completed if t.completed_at is not None]
    return SafetyRecord(
        driver_id=driver_id,
        badge=badge,
        total_rides=len(completed),
        average_rating=round(average, 2),
        incidents=len(incident_list),
        complaints=len(complaint_list),
        registration_date=registration_date,
        last_incident_date=incident_list[-1].occurred_at if incident_list else None,
        last_trip_completed_at=max(finished) if finished else None,
        computed_at=now,
    )
