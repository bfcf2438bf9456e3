"""Domain enumerations and state-transition rules."""

import enum


class TripStatus(str, enum.Enum):
    REQUESTED = "requested"
    SEARCHING = "searching"
    ACCEPTED = "accepted"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
TRIP_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.REQUESTED: {TripStatus.SEARCHING, TripStatus.CANCELLED},
    TripStatus.SEARCHING: {TripStatus.ACCEPTED, TripStatus.CANCELLED},
    TripStatus.ACCEPTED: {TripStatus.ARRIVED, TripStatus.CANCELLED},
    TripStatus.ARRIVED: {TripStatus.IN_PROGRESS, TripStatus.CANCELLED},
    TripStatus.IN_PROGRESS: {TripStatus.COMPLETED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED})

# Statuses in which a driver is bound to the trip
DRIVER_BOUND_STATUSES = frozenset(
    {TripStatus.ACCEPTED, TripStatus.ARRIVED, TripStatus.IN_PROGRESS}
)


class RideKind(str, enum.Enum):
    NORMAL = "normal"
    ERRAND = "errand"


class DriverStatus(str, enum.Enum):
    OFFLINE = "offline"
    AVAILABLE = "available"
    ON_RIDE = "on_ride"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    GCASH = "gcash"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class DiscountType(str, enum.Enum):
    NONE = "none"
    SENIOR = "senior"
    PWD = "pwd"


class Role(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    ADMIN = "admin"
    SYSTEM = "system"


class SafetyBadge(str, enum.Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class IncidentType(str, enum.Enum):
    ACCIDENT = "accident"
    VIOLATION = "violation"
    MISCONDUCT = "misconduct"
    OTHER = "other"


class IncidentSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ComplaintType(str, enum.Enum):
    OVERCHARGING = "overcharging"
    RUDE_BEHAVIOR = "rude_behavior"
    UNSAFE_DRIVING = "unsafe_driving"
    VEHICLE_CONDITION = "vehicle_condition"
    OTHER = "other"


NO_DRIVER_FOUND = "no_driver_found"


class ScheduledRideStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


SCHEDULED_RIDE_TRANSITIONS: dict[ScheduledRideStatus, set[ScheduledRideStatus]] = {
    ScheduledRideStatus.SCHEDULED: {
        ScheduledRideStatus.ACCEPTED,
        ScheduledRideStatus.CANCELLED,
    },
    ScheduledRideStatus.ACCEPTED: {
        ScheduledRideStatus.COMPLETED,
        ScheduledRideStatus.CANCELLED,
    },
    ScheduledRideStatus.COMPLETED: set(),
    ScheduledRideStatus.CANCELLED: set(),
}


class DemandAreaKind(str, enum.Enum):
    SCHOOL = "school"
    MARKET = "market"
    TERMINAL = "terminal"
    HOSPITAL = "hospital"
    CHURCH = "church"
    OTHER = "other"


class SuggestionPriority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
