"""Scheduled rides and demand areas.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

SCHEDULED_RIDE_STATUS = sa.Enum(
    "scheduled", "accepted", "completed", "cancelled", name="scheduledridestatus"
)
DEMAND_AREA_KIND = sa.Enum(
    "school", "market", "terminal", "hospital", "church", "other",
    name="demandareakind",
)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # ── scheduled_rides ───────────────────────────────────────────────
    op.create_table(
        "scheduled_rides",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("passenger_id", sa.String(64), nullable=False),
        sa.Column("passenger_name", sa.String(120), nullable=True),
        sa.Column("passenger_phone", sa.String(32), nullable=True),
        sa.Column("driver_id", sa.String(64), nullable=True),
        sa.Column("driver_name", sa.String(120), nullable=True),
        sa.Column("driver_phone", sa.String(32), nullable=True),
        sa.Column("driver_plate", sa.String(20), nullable=True),
        sa.Column("pickup_text", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("dropoff_text", sa.String(255), nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        _ts("scheduled_at", nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("status", SCHEDULED_RIDE_STATUS, nullable=False),
        _ts("created_at", nullable=False),
        _ts("accepted_at"),
        _ts("cancelled_at"),
        _ts("completed_at"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_scheduled_rides_passenger", "scheduled_rides", ["passenger_id"]
    )
    op.create_index("idx_scheduled_rides_driver", "scheduled_rides", ["driver_id"])
    op.create_index(
        "idx_scheduled_rides_open", "scheduled_rides", ["status", "scheduled_at"]
    )

    # ── demand_areas ──────────────────────────────────────────────────
    op.create_table(
        "demand_areas",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("kind", DEMAND_AREA_KIND, nullable=False),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("radius_km", sa.Float, nullable=False),
        sa.Column("peak_hours", sa.JSON, nullable=False),
        sa.Column("average_demand", sa.Float, nullable=False),
        _ts("updated_at", nullable=False),
    )


def downgrade() -> None:
    op.drop_table("demand_areas")
    op.drop_table("scheduled_rides")
    for name in ("demandareakind", "scheduledridestatus"):
        op.execute(f"DROP TYPE IF EXISTS {name}")
