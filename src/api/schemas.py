"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.entities import Location, Place, TripChanges
from src.domain.enums import (
    ComplaintType,
    DemandAreaKind,
    DriverStatus,
    IncidentSeverity,
    IncidentType,
    PaymentMethod,
    PaymentStatus,
    RideKind,
    ScheduledRideStatus,
    SuggestionPriority,
    TripStatus,
)
from src.domain.pricing import MAX_DISTANCE_KM

MAX_DISTANCE = float(MAX_DISTANCE_KM)


# ── Requests ──────────────────────────────────────────────────────────


class PlaceIn(BaseModel):
    text: str = Field("", max_length=255)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)

    def to_place(self) -> Place:
        location = None
        if self.lat is not None and self.lng is not None:
            location = Location(latitude=self.lat, longitude=self.lng)
        return Place(text=self.text, location=location)


class BookingCreateRequest(BaseModel):
    passenger_name: str = Field("", max_length=120)
    passenger_phone: str = Field("", max_length=32)
    pickup: PlaceIn
    dropoff: PlaceIn
    distance_km: Optional[float] = Field(None, ge=0, le=MAX_DISTANCE)
    preferred_driver_id: Optional[str] = Field(None, max_length=64)
    ride_kind: RideKind = RideKind.NORMAL
    notes: Optional[str] = Field(None, max_length=500)
    zone_name: Optional[str] = Field(None, max_length=64)
    is_senior_discount: bool = False
    is_pwd_discount: bool = False


class TripUpdateRequest(BaseModel):
    """Partial update.  Fare columns are deliberately not accepted."""

    status: Optional[TripStatus] = None
    driver_id: Optional[str] = Field(None, max_length=64)
    pickup_confirmed: Optional[bool] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    cancellation_reason: Optional[str] = Field(None, max_length=255)

    model_config = {"extra": "forbid"}

    def to_changes(self) -> TripChanges:
        return TripChanges(**self.model_dump())


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=500)


class FareQuoteRequest(BaseModel):
    distance_km: float = Field(..., ge=0, le=MAX_DISTANCE)
    zone_name: Optional[str] = Field(None, max_length=64)
    at: Optional[datetime] = None
    is_senior_discount: bool = False
    is_pwd_discount: bool = False
    is_errand: bool = False


class DriverProfileRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = Field(None, max_length=32)
    email: Optional[str] = Field(None, max_length=255)
    plate_number: Optional[str] = Field(None, max_length=20)


class HeartbeatRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    is_online: bool = True
    status: Optional[DriverStatus] = None


class DriverStatusRequest(BaseModel):
    status: DriverStatus


class IncidentRequest(BaseModel):
    type: IncidentType
    description: str = Field("", max_length=2000)
    severity: IncidentSeverity = IncidentSeverity.LOW
    occurred_at: Optional[datetime] = None


class ComplaintRequest(BaseModel):
    type: ComplaintType
    description: str = Field("", max_length=2000)
    trip_id: Optional[str] = Field(None, max_length=64)
    occurred_at: Optional[datetime] = None


class ZoneRateRequest(BaseModel):
    base_fare: float = Field(..., ge=0)
    rate_per_km: float = Field(..., ge=0)
    minimum_fare: float = Field(..., ge=0)
    night_surcharge: float = Field(0, ge=0)


class ScheduledRideCreateRequest(BaseModel):
    passenger_name: str = Field("", max_length=120)
    passenger_phone: str = Field("", max_length=32)
    pickup: PlaceIn
    dropoff: PlaceIn
    scheduled_at: datetime
    notes: Optional[str] = Field(None, max_length=500)


class DemandAreaRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    kind: DemandAreaKind = DemandAreaKind.OTHER
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    radius_km: float = Field(..., gt=0, le=50)
    peak_hours: list[int] = Field(..., min_length=1, max_length=24)
    average_demand: float = Field(..., ge=0)


# ── Responses ─────────────────────────────────────────────────────────


class FareResponse(BaseModel):
    min: float
    max: float
    base: float
    discount_amount: float
    discount_type: str
    zone_name: Optional[str] = None


class TripResponse(BaseModel):
    id: str
    passenger_id: str
    passenger_name: Optional[str] = None
    driver_id: Optional[str] = None
    preferred_driver_id: Optional[str] = None
    pickup_text: str
    pickup_lat: float
    pickup_lng: float
    dropoff_text: str
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    distance_km: float
    fare: FareResponse
    ride_kind: str
    notes: Optional[str] = None
    status: str
    payment_method: Optional[str] = None
    payment_status: str
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    rating_for_driver: Optional[int] = None
    rating_for_passenger: Optional[int] = None
    created_at: datetime
    searching_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    pickup_confirmed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, trip) -> "TripResponse":
        return cls(
            id=trip.id,
            passenger_id=trip.passenger_id,
            passenger_name=trip.passenger_name,
            driver_id=trip.driver_id,
            preferred_driver_id=trip.preferred_driver_id,
            pickup_text=trip.pickup_text,
            pickup_lat=trip.pickup_lat,
            pickup_lng=trip.pickup_lng,
            dropoff_text=trip.dropoff_text,
            dropoff_lat=trip.dropoff_lat,
            dropoff_lng=trip.dropoff_lng,
            distance_km=trip.distance_km,
            fare=FareResponse(
                min=float(trip.fare_min),
                max=float(trip.fare_max),
                base=float(trip.fare_base),
                discount_amount=float(trip.discount_amount),
                discount_type=trip.discount_type.value,
                zone_name=trip.zone_name,
            ),
            ride_kind=trip.ride_kind.value,
            notes=trip.notes,
            status=trip.status.value,
            payment_method=trip.payment_method.value if trip.payment_method else None,
            payment_status=trip.payment_status.value,
            cancelled_by=trip.cancelled_by.value if trip.cancelled_by else None,
            cancellation_reason=trip.cancellation_reason,
            rating_for_driver=trip.rating_for_driver,
            rating_for_passenger=trip.rating_for_passenger,
            created_at=trip.created_at,
            searching_at=trip.searching_at,
            accepted_at=trip.accepted_at,
            arrived_at=trip.arrived_at,
            pickup_confirmed_at=trip.pickup_confirmed_at,
            started_at=trip.started_at,
            completed_at=trip.completed_at,
            cancelled_at=trip.cancelled_at,
        )


class DriverProfileResponse(BaseModel):
    id: str
    full_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    plate_number: Optional[str] = None
    registered_at: datetime

    model_config = {"from_attributes": True}


class DriverLocationResponse(BaseModel):
    driver_id: str
    driver_name: Optional[str] = None
    latitude: float
    longitude: float
    h3_cell: Optional[str] = None
    is_online: bool
    status: DriverStatus
    last_updated: datetime
    plate_number: Optional[str] = None
    rating: Optional[float] = None
    total_rides: int = 0

    model_config = {"from_attributes": True}


class AvailableDriverResponse(BaseModel):
    driver: DriverLocationResponse
    distance_km: float


class SafetyRecordResponse(BaseModel):
    driver_id: str
    badge: str
    total_rides: int
    average_rating: Optional[float] = None
    incidents: int
    complaints: int
    registration_date: datetime
    last_incident_date: Optional[datetime] = None
    last_trip_completed_at: Optional[datetime] = None
    computed_at: datetime

    @classmethod
    def from_record(cls, record) -> "SafetyRecordResponse":
        return cls(
            driver_id=record.driver_id,
            badge=record.badge.value,
            total_rides=record.total_rides,
            average_rating=record.average_rating,
            incidents=record.incidents,
            complaints=record.complaints,
            registration_date=record.registration_date,
            last_incident_date=record.last_incident_date,
            last_trip_completed_at=record.last_trip_completed_at,
            computed_at=record.computed_at,
        )


class ZoneRateResponse(BaseModel):
    zone_name: str
    base_fare: float
    rate_per_km: float
    minimum_fare: float
    night_surcharge: float
    effective_date: datetime

    @classmethod
    def from_model(cls, row) -> "ZoneRateResponse":
        return cls(
            zone_name=row.zone_name,
            base_fare=float(row.base_fare),
            rate_per_km=float(row.rate_per_km),
            minimum_fare=float(row.minimum_fare),
            night_surcharge=float(row.night_surcharge),
            effective_date=row.effective_date,
        )


class ScheduledRideResponse(BaseModel):
    id: str
    passenger_id: str
    passenger_name: Optional[str] = None
    passenger_phone: Optional[str] = None
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    driver_plate: Optional[str] = None
    pickup_text: str
    pickup_lat: float
    pickup_lng: float
    dropoff_text: str
    dropoff_lat: float
    dropoff_lng: float
    scheduled_at: datetime
    notes: Optional[str] = None
    status: ScheduledRideStatus
    created_at: datetime
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DemandAreaResponse(BaseModel):
    id: str
    name: str
    kind: DemandAreaKind
    lat: float
    lng: float
    radius_km: float
    peak_hours: list[int]
    average_demand: float

    @classmethod
    def from_area(cls, area) -> "DemandAreaResponse":
        return cls(
            id=area.id,
            name=area.name,
            kind=area.kind,
            lat=area.location.latitude,
            lng=area.location.longitude,
            radius_km=area.radius_km,
            peak_hours=sorted(area.peak_hours),
            average_demand=area.average_demand,
        )


class ForecastResponse(BaseModel):
    area: DemandAreaResponse
    expected_demand: float
    historical_bookings: int

    @classmethod
    def from_forecast(cls, forecast) -> "ForecastResponse":
        return cls(
            area=DemandAreaResponse.from_area(forecast.area),
            expected_demand=forecast.expected_demand,
            historical_bookings=forecast.historical_bookings,
        )


class DispatchSuggestionResponse(BaseModel):
    area: DemandAreaResponse
    suggested_drivers: int
    current_drivers: int
    needed_drivers: int
    priority: SuggestionPriority
    reason: str

    @classmethod
    def from_suggestion(cls, suggestion) -> "DispatchSuggestionResponse":
        return cls(
            area=DemandAreaResponse.from_area(suggestion.area),
            suggested_drivers=suggestion.suggested_drivers,
            current_drivers=suggestion.current_drivers,
            needed_drivers=suggestion.needed_drivers,
            priority=suggestion.priority,
            reason=suggestion.reason,
        )


class ReconciliationResponse(BaseModel):
    released: list[str]
    occupied: list[str]


class ExpiryResponse(BaseModel):
    cancelled: int


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
