"""Initial schema: drivers, live registry, trips, safety logs, zone tariffs.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

TRIP_STATUS = sa.Enum(
    "requested",
    "searching",
    "accepted",
    "arrived",
    "in_progress",
    "completed",
    "cancelled",
    name="tripstatus",
)
DRIVER_STATUS = sa.Enum("offline", "available", "on_ride", name="driverstatus")
RIDE_KIND = sa.Enum("normal", "errand", name="ridekind")
DISCOUNT_TYPE = sa.Enum("none", "senior", "pwd", name="discounttype")
PAYMENT_METHOD = sa.Enum("cash", "gcash", name="paymentmethod")
PAYMENT_STATUS = sa.Enum("pending", "completed", name="paymentstatus")
ROLE = sa.Enum("passenger", "driver", "admin", "system", name="role")
SAFETY_BADGE = sa.Enum("green", "yellow", "red", name="safetybadge")
INCIDENT_TYPE = sa.Enum(
    "accident", "violation", "misconduct", "other", name="incidenttype"
)
INCIDENT_SEVERITY = sa.Enum("low", "medium", "high", name="incidentseverity")
COMPLAINT_TYPE = sa.Enum(
    "overcharging",
    "rude_behavior",
    "unsafe_driving",
    "vehicle_condition",
    "other",
    name="complainttype",
)

MONEY = sa.Numeric(10, 2)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("full_name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("plate_number", sa.String(20), nullable=True),
        _ts("registered_at", nullable=False),
    )

    # ── driver_locations ──────────────────────────────────────────────
    op.create_table(
        "driver_locations",
        sa.Column("driver_id", sa.String(64), primary_key=True),
        sa.Column("driver_email", sa.String(255), nullable=True),
        sa.Column("driver_name", sa.String(120), nullable=True),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column("is_online", sa.Boolean, nullable=False, default=False),
        sa.Column("status", DRIVER_STATUS, nullable=False),
        _ts("last_updated", nullable=False),
        sa.Column("plate_number", sa.String(20), nullable=True),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("total_rides", sa.Integer, nullable=False, default=0),
    )
    op.create_index("idx_driver_locations_cell", "driver_locations", ["h3_cell"])
    op.create_index(
        "idx_driver_locations_status", "driver_locations", ["status", "is_online"]
    )
    op.create_index(
        "idx_driver_locations_updated", "driver_locations", ["last_updated"]
    )

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("passenger_id", sa.String(64), nullable=False),
        sa.Column("passenger_name", sa.String(120), nullable=True),
        sa.Column("passenger_phone", sa.String(32), nullable=True),
        sa.Column("driver_id", sa.String(64), nullable=True),
        sa.Column("preferred_driver_id", sa.String(64), nullable=True),
        sa.Column("pickup_text", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("dropoff_text", sa.String(255), nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=True),
        sa.Column("dropoff_lng", sa.Float, nullable=True),
        sa.Column("distance_km", sa.Float, nullable=False),
        sa.Column("fare_min", MONEY, nullable=False),
        sa.Column("fare_max", MONEY, nullable=False),
        sa.Column("fare_base", MONEY, nullable=False),
        sa.Column("discount_amount", MONEY, nullable=False),
        sa.Column("discount_type", DISCOUNT_TYPE, nullable=False),
        sa.Column("zone_name", sa.String(64), nullable=True),
        sa.Column("ride_kind", RIDE_KIND, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("status", TRIP_STATUS, nullable=False),
        _ts("created_at", nullable=False),
        _ts("searching_at"),
        _ts("accepted_at"),
        _ts("arrived_at"),
        _ts("pickup_confirmed_at"),
        _ts("started_at"),
        _ts("completed_at"),
        _ts("cancelled_at"),
        sa.Column("cancelled_by", ROLE, nullable=True),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=True),
        sa.Column("payment_status", PAYMENT_STATUS, nullable=False),
        sa.Column("rating_for_driver", sa.SmallInteger, nullable=True),
        sa.Column("feedback_for_driver", sa.Text, nullable=True),
        sa.Column("rating_for_passenger", sa.SmallInteger, nullable=True),
        sa.Column("feedback_for_passenger", sa.Text, nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "rating_for_driver IS NULL OR rating_for_driver BETWEEN 1 AND 5",
            name="ck_trips_rating_for_driver",
        ),
        sa.CheckConstraint(
            "rating_for_passenger IS NULL OR rating_for_passenger BETWEEN 1 AND 5",
            name="ck_trips_rating_for_passenger",
        ),
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_passenger", "trips", ["passenger_id"])
    op.create_index("idx_trips_driver", "trips", ["driver_id"])
    op.create_index(
        "uq_trips_active_driver",
        "trips",
        ["driver_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('accepted', 'arrived', 'in_progress')"),
    )

    # ── incidents / complaints (append-only) ──────────────────────────
    op.create_table(
        "incidents",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("driver_id", sa.String(64), nullable=False),
        _ts("occurred_at", nullable=False),
        sa.Column("type", INCIDENT_TYPE, nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("reported_by", sa.String(64), nullable=False),
        sa.Column("severity", INCIDENT_SEVERITY, nullable=False),
        _ts("recorded_at", nullable=False),
    )
    op.create_index("idx_incidents_driver", "incidents", ["driver_id"])

    op.create_table(
        "complaints",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("driver_id", sa.String(64), nullable=False),
        _ts("occurred_at", nullable=False),
        sa.Column("type", COMPLAINT_TYPE, nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("reported_by", sa.String(64), nullable=False),
        sa.Column("trip_id", sa.String(64), nullable=True),
        _ts("recorded_at", nullable=False),
    )
    op.create_index("idx_complaints_driver", "complaints", ["driver_id"])

    # ── safety_records (derived cache) ────────────────────────────────
    op.create_table(
        "safety_records",
        sa.Column("driver_id", sa.String(64), primary_key=True),
        sa.Column("badge", SAFETY_BADGE, nullable=False),
        sa.Column("total_rides", sa.Integer, nullable=False),
        sa.Column("average_rating", sa.Float, nullable=True),
        sa.Column("incidents", sa.Integer, nullable=False),
        sa.Column("complaints", sa.Integer, nullable=False),
        _ts("registration_date", nullable=False),
        _ts("last_incident_date"),
        _ts("last_trip_completed_at"),
        _ts("computed_at", nullable=False),
    )

    # ── zone_rates ────────────────────────────────────────────────────
    op.create_table(
        "zone_rates",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("zone_name", sa.String(64), nullable=False),
        sa.Column("base_fare", MONEY, nullable=False),
        sa.Column("rate_per_km", MONEY, nullable=False),
        sa.Column("minimum_fare", MONEY, nullable=False),
        sa.Column("night_surcharge", MONEY, nullable=False, server_default="0"),
        _ts("effective_date", nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("idx_zone_rates_active", "zone_rates", ["zone_name", "is_active"])


def downgrade() -> None:
    op.drop_table("zone_rates")
    op.drop_table("safety_records")
    op.drop_table("complaints")
    op.drop_table("incidents")
    op.drop_table("trips")
    op.drop_table("driver_locations")
    op.drop_table("drivers")
    for name in (
        "complainttype",
        "incidentseverity",
        "incidenttype",
        "safetybadge",
        "role",
        "paymentstatus",
        "paymentmethod",
        "discounttype",
        "ridekind",
        "driverstatus",
        "tripstatus",
    ):
        op.execute(f"DROP TYPE IF EXISTS {name}")
