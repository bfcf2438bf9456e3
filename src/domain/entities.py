"""
Domain entities and value objects.

Patterns used
-------------
- ``SessionContext`` replaces any process-wide "current user / active trip"
  pointer: every trip and dispatch call receives the acting party explicitly.
- ``TripChanges`` is the partial update a client sends; the lifecycle module
  turns it into a guarded column write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .enums import PaymentMethod, PaymentStatus, Role, TripStatus
from .errors import ValidationError


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Place:
    """Descriptive address text plus its coordinate, if known."""

    text: str
    location: Optional[Location] = None


@dataclass(frozen=True)
class PassengerInfo:
    passenger_id: str
    name: str = ""
    phone: str = ""


@dataclass(frozen=True)
class SessionContext:
    user_id: str
    role: Role

    @property
    def is_privileged(self) -> bool:
        return self.role in (Role.ADMIN, Role.SYSTEM)

    def require(self, *roles: Role) -> None:
        if self.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise ValidationError(
                f"role {self.role.value} may not do this (needs {allowed})"
            )


SYSTEM_CONTEXT = SessionContext(user_id="system", role=Role.SYSTEM)


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class TripChanges:
    """Partial trip update.  ``None`` means "leave unchanged"."""

    status: Optional[TripStatus] = None
    driver_id: Optional[str] = None
    pickup_confirmed: Optional[bool] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    cancellation_reason: Optional[str] = None


@dataclass
class TripSnapshot:
    """The fields the lifecycle rules read.  ORM rows satisfy the same shape."""

    id: Optional[str] = None
    passenger_id: str = ""
    driver_id: Optional[str] = None
    status: TripStatus = TripStatus.REQUESTED
    pickup_confirmed_at: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    searching_at: Optional[datetime] = None
