"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``drivers``           -- driver profiles (registration date feeds safety)
* ``driver_locations``  -- live registry: one row per driver, upserted on
                           every heartbeat
* ``trips``             -- bookings from request to completion / cancellation
* ``incidents``         -- append-only incident log
* ``complaints``        -- append-only complaint log
* ``safety_records``    -- derived badge cache, rebuilt on every refresh
* ``zone_rates``        -- per-zone tariff history (one active row per zone)
* ``scheduled_rides``   -- advance reservations a driver can take ahead of time
* ``demand_areas``      -- operator-defined hot spots with peak hours

Indexes
-------
* **B-Tree** on ``trips.status``, ``passenger_id``, ``driver_id`` for the
  participant and open-booking queries.
* **Partial unique** on ``trips.driver_id`` over accepted / arrived /
  in-progress rows: one active trip per driver, enforced by storage.
* **B-Tree** on ``driver_locations.h3_cell`` and ``(status, is_online)`` for
  dispatch; on the log tables' ``driver_id`` for safety recomputation.
"""

from __future__ import annotations

import enum
from datetime import timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    Index,
    JSON,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    TypeDecorator,
    func,
    text,
)

from .database import Base
from src.domain.enums import (
    ComplaintType,
    DemandAreaKind,
    DiscountType,
    DriverStatus,
    IncidentSeverity,
    IncidentType,
    PaymentMethod,
    PaymentStatus,
    RideKind,
    Role,
    SafetyBadge,
    ScheduledRideStatus,
    TripStatus,
)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Store enum *values* (lowercase wire form) rather than member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


MONEY = Numeric(10, 2)

# A driver holds at most one trip in these statuses
ACTIVE_DRIVER_CLAUSE = "status IN ('accepted', 'arrived', 'in_progress')"


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(String(64), primary_key=True)
    full_name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    plate_number = Column(String(20), nullable=True)
    registered_at = Column(UTCDateTime, nullable=False)


class DriverLocationModel(Base):
    __tablename__ = "driver_locations"

    driver_id = Column(String(64), primary_key=True)
    driver_email = Column(String(255), nullable=True)
    driver_name = Column(String(120), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    h3_cell = Column(String(20), nullable=True)
    is_online = Column(Boolean, default=False, nullable=False)
    status = Column(
        _enum(DriverStatus, "driverstatus"),
        default=DriverStatus.OFFLINE,
        nullable=False,
    )
    last_updated = Column(UTCDateTime, nullable=False)
    plate_number = Column(String(20), nullable=True)
    rating = Column(Float, nullable=True)
    total_rides = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("idx_driver_locations_cell", "h3_cell"),
        Index("idx_driver_locations_status", "status", "is_online"),
        Index("idx_driver_locations_updated", "last_updated"),
    )


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(String(64), primary_key=True)

    passenger_id = Column(String(64), nullable=False)
    passenger_name = Column(String(120), nullable=True)
    passenger_phone = Column(String(32), nullable=True)
    driver_id = Column(String(64), nullable=True)
    preferred_driver_id = Column(String(64), nullable=True)

    pickup_text = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    dropoff_text = Column(String(255), nullable=False)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)
    distance_km = Column(Float, nullable=False)

    # Frozen at creation; no update path writes these columns.
    fare_min = Column(MONEY, nullable=False)
    fare_max = Column(MONEY, nullable=False)
    fare_base = Column(MONEY, nullable=False)
    discount_amount = Column(MONEY, nullable=False)
    discount_type = Column(
        _enum(DiscountType, "discounttype"),
        default=DiscountType.NONE,
        nullable=False,
    )
    zone_name = Column(String(64), nullable=True)

    ride_kind = Column(
        _enum(RideKind, "ridekind"), default=RideKind.NORMAL, nullable=False
    )
    notes = Column(Text, nullable=True)

    status = Column(
        _enum(TripStatus, "tripstatus"),
        default=TripStatus.REQUESTED,
        nullable=False,
    )
    created_at = Column(UTCDateTime, nullable=False)
    searching_at = Column(UTCDateTime, nullable=True)
    accepted_at = Column(UTCDateTime, nullable=True)
    arrived_at = Column(UTCDateTime, nullable=True)
    pickup_confirmed_at = Column(UTCDateTime, nullable=True)
    started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by = Column(_enum(Role, "role"), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    payment_method = Column(_enum(PaymentMethod, "paymentmethod"), nullable=True)
    payment_status = Column(
        _enum(PaymentStatus, "paymentstatus"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    rating_for_driver = Column(SmallInteger, nullable=True)
    feedback_for_driver = Column(Text, nullable=True)
    rating_for_passenger = Column(SmallInteger, nullable=True)
    feedback_for_passenger = Column(Text, nullable=True)

    updated_at = Column(
        UTCDateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_passenger", "passenger_id"),
        Index("idx_trips_driver", "driver_id"),
        Index(
            "uq_trips_active_driver",
            "driver_id",
            unique=True,
            postgresql_where=text(ACTIVE_DRIVER_CLAUSE),
            sqlite_where=text(ACTIVE_DRIVER_CLAUSE),
        ),
    )


class IncidentModel(Base):
    __tablename__ = "incidents"

    id = Column(String(64), primary_key=True)
    driver_id = Column(String(64), nullable=False)
    occurred_at = Column(UTCDateTime, nullable=False)
    type = Column(_enum(IncidentType, "incidenttype"), nullable=False)
    description = Column(Text, nullable=False, default="")
    reported_by = Column(String(64), nullable=False)
    severity = Column(
        _enum(IncidentSeverity, "incidentseverity"),
        default=IncidentSeverity.LOW,
        nullable=False,
    )
    recorded_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (Index("idx_incidents_driver", "driver_id"),)


class ComplaintModel(Base):
    __tablename__ = "complaints"

    id = Column(String(64), primary_key=True)
    driver_id = Column(String(64), nullable=False)
    occurred_at = Column(UTCDateTime, nullable=False)
    type = Column(_enum(ComplaintType, "complainttype"), nullable=False)
    description = Column(Text, nullable=False, default="")
    reported_by = Column(String(64), nullable=False)
    trip_id = Column(String(64), nullable=True)
    recorded_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (Index("idx_complaints_driver", "driver_id"),)


class SafetyRecordModel(Base):
    __tablename__ = "safety_records"

    driver_id = Column(String(64), primary_key=True)
    badge = Column(_enum(SafetyBadge, "safetybadge"), nullable=False)
    total_rides = Column(Integer, nullable=False)
    average_rating = Column(Float, nullable=True)
    incidents = Column(Integer, nullable=False)
    complaints = Column(Integer, nullable=False)
    registration_date = Column(UTCDateTime, nullable=False)
    last_incident_date = Column(UTCDateTime, nullable=True)
    last_trip_completed_at = Column(UTCDateTime, nullable=True)
    computed_at = Column(UTCDateTime, nullable=False)


class ZoneRateModel(Base):
    __tablename__ = "zone_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    zone_name = Column(String(64), nullable=False)
    base_fare = Column(MONEY, nullable=False)
    rate_per_km = Column(MONEY, nullable=False)
    minimum_fare = Column(MONEY, nullable=False)
    night_surcharge = Column(MONEY, nullable=False, default=0)
    effective_date = Column(UTCDateTime, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("idx_zone_rates_active", "zone_name", "is_active"),)


class ScheduledRideModel(Base):
    __tablename__ = "scheduled_rides"

    id = Column(String(64), primary_key=True)

    passenger_id = Column(String(64), nullable=False)
    passenger_name = Column(String(120), nullable=True)
    passenger_phone = Column(String(32), nullable=True)
    driver_id = Column(String(64), nullable=True)
    driver_name = Column(String(120), nullable=True)
    driver_phone = Column(String(32), nullable=True)
    driver_plate = Column(String(20), nullable=True)

    pickup_text = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    dropoff_text = Column(String(255), nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)

    scheduled_at = Column(UTCDateTime, nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(
        _enum(ScheduledRideStatus, "scheduledridestatus"),
        default=ScheduledRideStatus.SCHEDULED,
        nullable=False,
    )
    created_at = Column(UTCDateTime, nullable=False)
    accepted_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(
        UTCDateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_scheduled_rides_passenger", "passenger_id"),
        Index("idx_scheduled_rides_driver", "driver_id"),
        Index("idx_scheduled_rides_open", "status", "scheduled_at"),
    )


class DemandAreaModel(Base):
    __tablename__ = "demand_areas"

    id = Column(String(64), primary_key=True)
    name = Column(String(120), nullable=False)
    kind = Column(_enum(DemandAreaKind, "demandareakind"), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    radius_km = Column(Float, nullable=False)
    peak_hours = Column(JSON, nullable=False)  # list of local hours 0-23
    average_demand = Column(Float, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
