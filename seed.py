"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - the default Lopez zone tariff
  - 8 sample drivers with registry entries around Lopez town proper
  - 5 sample trips (mix of SEARCHING, ACCEPTED, COMPLETED, CANCELLED)
  - 1 incident and 1 complaint, then a safety refresh for every driver
  - 2 scheduled rides due a day from now, one already taken
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from src.config import settings
from src.domain.enums import (
    NO_DRIVER_FOUND,
    ComplaintType,
    DriverStatus,
    IncidentSeverity,
    IncidentType,
    PaymentMethod,
    PaymentStatus,
    Role,
    ScheduledRideStatus,
    TripStatus,
)
from src.domain.matching import location_cell
from src.domain.pricing import fare
from src.infrastructure.clock import utcnow
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.models import (
    ComplaintModel,
    DriverLocationModel,
    DriverModel,
    IncidentModel,
    ScheduledRideModel,
    TripModel,
    ZoneRateModel,
)
from src.services.fares import default_zone_rate
from src.services.safety import SafetyService

# Lopez, Quezon town proper (approx)
TOWN_LAT, TOWN_LNG = 13.8844, 122.2603


DRIVERS = [
    {"id": "drv-001", "name": "Jose Ramos", "plate": "LPZ-101", "lat": 13.8850, "lng": 122.2610, "days": 420},
    {"id": "drv-002", "name": "Mario Dela Cruz", "plate": "LPZ-102", "lat": 13.8838, "lng": 122.2595, "days": 300},
    {"id": "drv-003", "name": "Ramon Villanueva", "plate": "LPZ-103", "lat": 13.8861, "lng": 122.2620, "days": 200},
    {"id": "drv-004", "name": "Eduardo Santos", "plate": "LPZ-104", "lat": 13.8829, "lng": 122.2588, "days": 15},
    {"id": "drv-005", "name": "Danilo Reyes", "plate": "LPZ-105", "lat": 13.8872, "lng": 122.2634, "days": 90},
    {"id": "drv-006", "name": "Rogelio Mendoza", "plate": "LPZ-106", "lat": 13.8815, "lng": 122.2577, "days": 60},
    {"id": "drv-007", "name": "Arnel Bautista", "plate": "LPZ-107", "lat": 13.8900, "lng": 122.2700, "days": 500},
    {"id": "drv-008", "name": "Noel Garcia", "plate": "LPZ-108", "lat": 13.8790, "lng": 122.2550, "days": 45},
]


def _trip(trip_id, passenger_id, status, distance_km, created, **extra):
    quote = fare(distance_km, default_zone_rate())
    return TripModel(
        id=trip_id,
        passenger_id=passenger_id,
        pickup_text="Lopez Public Market",
        pickup_lat=TOWN_LAT,
        pickup_lng=TOWN_LNG,
        dropoff_text=extra.pop("dropoff_text", "Lopez Municipal Hall"),
        distance_km=distance_km,
        fare_min=quote.min,
        fare_max=quote.max,
        fare_base=quote.base,
        discount_amount=quote.discount_amount,
        discount_type=quote.discount_type,
        zone_name=settings.default_zone,
        status=status,
        created_at=created,
        searching_at=created,
        **extra,
    )


async def seed():
    now = utcnow()
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM drivers"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Zone tariff ───────────────────────────────────────────────
        rate = default_zone_rate()
        session.add(
            ZoneRateModel(
                zone_name=rate.name,
                base_fare=rate.base_fare,
                rate_per_km=rate.rate_per_km,
                minimum_fare=rate.minimum_fare,
                night_surcharge=rate.night_surcharge,
                effective_date=now,
                is_active=True,
            )
        )
        print(f"  Created tariff for zone {rate.name}")

        # ── Drivers + registry ────────────────────────────────────────
        for d in DRIVERS:
            session.add(
                DriverModel(
                    id=d["id"],
                    full_name=d["name"],
                    plate_number=d["plate"],
                    registered_at=now - timedelta(days=d["days"]),
                )
            )
            session.add(
                DriverLocationModel(
                    driver_id=d["id"],
                    driver_name=d["name"],
                    plate_number=d["plate"],
                    latitude=d["lat"],
                    longitude=d["lng"],
                    h3_cell=location_cell(d["lat"], d["lng"], settings.h3_resolution),
                    is_online=True,
                    # drv-002 is carrying the accepted trip below
                    status=(
                        DriverStatus.ON_RIDE
                        if d["id"] == "drv-002"
                        else DriverStatus.AVAILABLE
                    ),
                    last_updated=now,
                )
            )
        await session.flush()
        print(f"  Created {len(DRIVERS)} drivers")

        # ── Trips ─────────────────────────────────────────────────────
        trips = [
            _trip("trip-seed-1", "pax-001", TripStatus.SEARCHING, 1.8, now),
            _trip(
                "trip-seed-2",
                "pax-002",
                TripStatus.ACCEPTED,
                2.4,
                now - timedelta(minutes=5),
                driver_id="drv-002",
                accepted_at=now - timedelta(minutes=4),
            ),
            _trip(
                "trip-seed-3",
                "pax-003",
                TripStatus.COMPLETED,
                3.1,
                now - timedelta(days=2),
                dropoff_text="Lopez Bay Terminal",
                driver_id="drv-001",
                accepted_at=now - timedelta(days=2),
                arrived_at=now - timedelta(days=2),
                pickup_confirmed_at=now - timedelta(days=2),
                started_at=now - timedelta(days=2),
                completed_at=now - timedelta(days=2),
                payment_method=PaymentMethod.CASH,
                payment_status=PaymentStatus.COMPLETED,
                rating_for_driver=5,
            ),
            _trip(
                "trip-seed-4",
                "pax-004",
                TripStatus.COMPLETED,
                0.9,
                now - timedelta(days=1),
                driver_id="drv-001",
                accepted_at=now - timedelta(days=1),
                arrived_at=now - timedelta(days=1),
                pickup_confirmed_at=now - timedelta(days=1),
                started_at=now - timedelta(days=1),
                completed_at=now - timedelta(days=1),
                payment_method=PaymentMethod.GCASH,
                payment_status=PaymentStatus.COMPLETED,
                rating_for_driver=4,
            ),
            _trip(
                "trip-seed-5",
                "pax-005",
                TripStatus.CANCELLED,
                1.2,
                now - timedelta(hours=3),
                cancelled_at=now - timedelta(hours=3) + timedelta(seconds=90),
                cancelled_by=Role.SYSTEM,
                cancellation_reason=NO_DRIVER_FOUND,
            ),
        ]
        session.add_all(trips)
        await session.flush()
        print(f"  Created {len(trips)} trips")

        # ── Safety logs ───────────────────────────────────────────────
        session.add(
            IncidentModel(
                id="incident-seed-1",
                driver_id="drv-007",
                occurred_at=now - timedelta(days=10),
                type=IncidentType.VIOLATION,
                description="Overloaded passengers at checkpoint",
                reported_by="admin",
                severity=IncidentSeverity.MEDIUM,
                recorded_at=now,
            )
        )
        session.add(
            ComplaintModel(
                id="complaint-seed-1",
                driver_id="drv-001",
                occurred_at=now - timedelta(days=1),
                type=ComplaintType.OVERCHARGING,
                description="Asked for PHP 10 over the quoted fare",
                reported_by="pax-004",
                trip_id="trip-seed-4",
                recorded_at=now,
            )
        )
        await session.commit()
        print("  Created 1 incident and 1 complaint")

        # ── Scheduled rides ───────────────────────────────────────────
        tomorrow = now + timedelta(days=1)
        session.add_all(
            [
                ScheduledRideModel(
                    id="sched-seed-1",
                    passenger_id="pax-006",
                    pickup_text="Lopez Central Elementary School",
                    pickup_lat=TOWN_LAT,
                    pickup_lng=TOWN_LNG,
                    dropoff_text="Barangay Talolong",
                    dropoff_lat=13.92,
                    dropoff_lng=122.28,
                    scheduled_at=tomorrow,
                    status=ScheduledRideStatus.SCHEDULED,
                    created_at=now,
                ),
                ScheduledRideModel(
                    id="sched-seed-2",
                    passenger_id="pax-007",
                    pickup_text="Lopez Terminal",
                    pickup_lat=13.8845,
                    pickup_lng=122.2605,
                    dropoff_text="Lopez District Hospital",
                    dropoff_lat=13.8870,
                    dropoff_lng=122.2650,
                    scheduled_at=tomorrow + timedelta(hours=1),
                    status=ScheduledRideStatus.ACCEPTED,
                    driver_id="drv-003",
                    driver_name="Ramon Villanueva",
                    driver_plate="LPZ-103",
                    created_at=now,
                    accepted_at=now,
                ),
            ]
        )
        await session.commit()
        print("  Created 2 scheduled rides")

        # ── Safety records ────────────────────────────────────────────
        safety = SafetyService(session)
        for d in DRIVERS:
            record = await safety.refresh(d["id"])
            print(f"  {d['id']}: {record.badge.value}")

        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
