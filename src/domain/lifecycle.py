"""
Trip lifecycle rules  (State Pattern)
=====================================

    REQUESTED -> SEARCHING -> ACCEPTED -> ARRIVED -> IN_PROGRESS -> COMPLETED
        \\____________\\___________\\__________\\
                                               -> CANCELLED

``plan_update`` turns a client's partial update into a ``TransitionPlan``:
the columns to write, the status the row must still hold for the write to
apply (compare-and-set guard), and the side effects to run once the write is
committed.  It never touches storage.

Rules
-----
* Re-applying the status a trip already holds is a no-op.
* ACCEPTED needs a driver id; a second, different driver is rejected.
* ARRIVED / IN_PROGRESS / COMPLETED are driven by the assigned driver.
* IN_PROGRESS needs a pickup confirmation (passenger or errand item).
* COMPLETED needs a payment method and ``payment_status == completed``.
* CANCELLED is allowed before IN_PROGRESS only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from .entities import SessionContext, TripChanges
from .enums import (
    DRIVER_BOUND_STATUSES,
    TERMINAL_STATUSES,
    TRIP_TRANSITIONS,
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    Role,
    TripStatus,
)
from .errors import InvalidTransitionError, ValidationError


class TripView(Protocol):
    passenger_id: str
    driver_id: Optional[str]
    status: TripStatus
    pickup_confirmed_at: Optional[datetime]
    payment_method: Optional[PaymentMethod]
    payment_status: Optional[PaymentStatus]
    searching_at: Optional[datetime]


@dataclass
class TransitionPlan:
    expected_status: TripStatus
    target: Optional[TripStatus] = None
    values: dict[str, Any] = field(default_factory=dict)
    # (driver id, new registry status) to apply after the trip write commits
    driver_effect: Optional[tuple[str, DriverStatus]] = None
    refresh_safety_for: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return not self.values


# ── Actor checks ──────────────────────────────────────────────────────


def _is_assigned_driver(trip: TripView, ctx: SessionContext) -> bool:
    return ctx.role is Role.DRIVER and ctx.user_id == trip.driver_id


def _is_participant(trip: TripView, ctx: SessionContext) -> bool:
    if ctx.role is Role.PASSENGER:
        return ctx.user_id == trip.passenger_id
    return _is_assigned_driver(trip, ctx)


def _require_assigned_driver(trip: TripView, ctx: SessionContext) -> None:
    if ctx.is_privileged or _is_assigned_driver(trip, ctx):
        return
    raise InvalidTransitionError(
        f"only the assigned driver ({trip.driver_id}) may do this"
    )


# ── Field updates ─────────────────────────────────────────────────────


def _plan_fields(
    trip: TripView, changes: TripChanges, now: datetime
) -> dict[str, Any]:
    values: dict[str, Any] = {}
    status = trip.status

    if changes.pickup_confirmed:
        if trip.pickup_confirmed_at is None:
            if status is not TripStatus.ARRIVED:
                raise InvalidTransitionError(
                    f"pickup can only be confirmed after arrival (trip is {status.value})"
                )
            values["pickup_confirmed_at"] = now

    payment = {
        "payment_method": changes.payment_method,
        "payment_status": changes.payment_status,
    }
    for column, value in payment.items():
        if value is None or value == getattr(trip, column):
            continue
        if status not in DRIVER_BOUND_STATUSES:
            raise InvalidTransitionError(
                f"payment can only be recorded on an active trip (trip is {status.value})"
            )
        values[column] = value

    if changes.driver_id is not None and changes.driver_id != trip.driver_id:
        if changes.status is not TripStatus.ACCEPTED:
            raise ValidationError("driver id can only be set when accepting a trip")

    return values


# ── Status transitions ────────────────────────────────────────────────


def plan_update(
    trip: TripView,
    changes: TripChanges,
    ctx: SessionContext,
    now: datetime,
) -> TransitionPlan:
    """Validate *changes* against *trip* and describe the write to perform."""
    if not (ctx.is_privileged or _is_participant(trip, ctx)):
        # a driver who is not yet assigned may still accept a searching trip
        accepting = (
            ctx.role is Role.DRIVER
            and changes.status is TripStatus.ACCEPTED
            and trip.status is TripStatus.SEARCHING
        )
        if not accepting:
            raise InvalidTransitionError(
                f"{ctx.role.value} {ctx.user_id} is not a participant of this trip"
            )

    current = trip.status
    target = changes.status
    plan = TransitionPlan(expected_status=current)

    if target is None or target == current:
        if target is TripStatus.ACCEPTED:
            driver_id = changes.driver_id or (
                ctx.user_id if ctx.role is Role.DRIVER else None
            )
            if driver_id is not None and driver_id != trip.driver_id:
                raise InvalidTransitionError(
                    f"trip already accepted by driver {trip.driver_id}"
                )
        if current in TERMINAL_STATUSES:
            _ensure_unchanged_after_close(trip, changes)
            return plan
        plan.values = _plan_fields(trip, changes, now)
        return plan

    if target not in TRIP_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(
            f"Cannot transition from {current.value} to {target.value}"
        )

    plan.target = target
    values = _plan_fields(trip, changes, now)
    values["status"] = target

    if target is TripStatus.SEARCHING:
        if ctx.role is not Role.SYSTEM:
            raise InvalidTransitionError("searching is entered automatically")
        values["searching_at"] = now

    elif target is TripStatus.ACCEPTED:
        driver_id = changes.driver_id or (
            ctx.user_id if ctx.role is Role.DRIVER else None
        )
        if not driver_id:
            raise ValidationError("accepting a trip requires a driver id")
        if ctx.role is Role.DRIVER and driver_id != ctx.user_id:
            raise InvalidTransitionError("a driver can only accept for themselves")
        values["driver_id"] = driver_id
        values["accepted_at"] = now
        plan.driver_effect = (driver_id, DriverStatus.ON_RIDE)

    elif target is TripStatus.ARRIVED:
        _require_assigned_driver(trip, ctx)
        values["arrived_at"] = now

    elif target is TripStatus.IN_PROGRESS:
        _require_assigned_driver(trip, ctx)
        confirmed = trip.pickup_confirmed_at or values.get("pickup_confirmed_at")
        if confirmed is None:
            raise InvalidTransitionError("pickup has not been confirmed")
        values["started_at"] = now

    elif target is TripStatus.COMPLETED:
        _require_assigned_driver(trip, ctx)
        method = values.get("payment_method", trip.payment_method)
        paid = values.get("payment_status", trip.payment_status)
        if method is None:
            raise InvalidTransitionError("payment method has not been recorded")
        if paid is not PaymentStatus.COMPLETED:
            raise InvalidTransitionError("payment has not been completed")
        values["completed_at"] = now
        plan.driver_effect = (trip.driver_id, DriverStatus.AVAILABLE)
        plan.refresh_safety_for = trip.driver_id

    elif target is TripStatus.CANCELLED:
        values["cancelled_at"] = now
        values["cancelled_by"] = ctx.role
        values["cancellation_reason"] = changes.cancellation_reason
        if trip.driver_id is not None and current in DRIVER_BOUND_STATUSES:
            plan.driver_effect = (trip.driver_id, DriverStatus.AVAILABLE)

    plan.values = values
    return plan


def _ensure_unchanged_after_close(trip: TripView, changes: TripChanges) -> None:
    """A closed trip accepts retries of what it already holds, nothing else."""
    for column in ("payment_method", "payment_status"):
        value = getattr(changes, column)
        if value is not None and value != getattr(trip, column):
            raise InvalidTransitionError(
                f"trip is {trip.status.value}; {column} can no longer change"
            )
    if changes.pickup_confirmed and trip.pickup_confirmed_at is None:
        raise InvalidTransitionError(
            f"trip is {trip.status.value}; pickup can no longer be confirmed"
        )


# ── Timeouts ──────────────────────────────────────────────────────────


def search_expired(trip: TripView, now: datetime, timeout_seconds: int) -> bool:
    """True when a SEARCHING trip has waited longer than the search timeout."""
    if trip.status is not TripStatus.SEARCHING or trip.searching_at is None:
        return False
    return now - trip.searching_at >= timedelta(seconds=timeout_seconds)
