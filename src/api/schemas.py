"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.entities import Location, Place, RideRequest
from src.domain.enums import CancellationReason, RideClass
from src.domain.lifecycle import phase_of


# ── Requests ──────────────────────────────────────────────────────────


class PointIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: str = ""

    def to_place(self) -> Place:
        return Place(Location(self.lat, self.lng), self.address)


class QuoteRequest(BaseModel):
    pickup: PointIn
    destination: PointIn


class RideCreateRequest(BaseModel):
    pickup: PointIn
    destination: PointIn
    ride_class: RideClass
    payment_method: Optional[str] = Field(
        None,
        max_length=64,
        description="Payment method id; the passenger's default is used when omitted.",
    )


class CancelRequest(BaseModel):
    reason: Optional[CancellationReason] = None


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=0, le=5)
    comments: list[str] = []
    other_text: str = Field("", max_length=500)


# ── Responses ─────────────────────────────────────────────────────────


class FareQuoteResponse(BaseModel):
    ride_class: RideClass
    fare: int


class QuoteResponse(BaseModel):
    distance_km: float
    duration_min: float
    polyline: str = ""
    fares: list[FareQuoteResponse]


class PointOut(BaseModel):
    lat: float
    lng: float
    address: str = ""

    @classmethod
    def from_place(cls, place: Place) -> "PointOut":
        return cls(lat=place.location.latitude, lng=place.location.longitude, address=place.address)


class DriverResponse(BaseModel):
    driver_id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    photo: Optional[str] = None


class RideResponse(BaseModel):
    id: str
    status: str
    phase: str
    ride_class: RideClass
    fare: float
    distance_km: float
    duration_min: float
    pickup: PointOut
    destination: PointOut
    payment_method: str = ""
    driver: Optional[DriverResponse] = None
    customer_picked_up: bool = False
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None

    @classmethod
    def from_ride(cls, ride: RideRequest, phase: Optional[str] = None) -> "RideResponse":
        driver = ride.driver
        return cls(
            id=ride.id,
            status=ride.status.value,
            phase=phase or phase_of(ride).value,
            ride_class=ride.ride_class,
            fare=ride.fare,
            distance_km=ride.distance_km,
            duration_min=ride.duration_min,
            pickup=PointOut.from_place(ride.pickup),
            destination=PointOut.from_place(ride.destination),
            payment_method=ride.payment_method,
            driver=(
                DriverResponse(
                    driver_id=driver.driver_id,
                    name=driver.name,
                    phone=driver.phone,
                    photo=driver.photo,
                )
                if driver
                else None
            ),
            customer_picked_up=ride.customer_picked_up,
            created_at=ride.created_at,
            assigned_at=ride.assigned_at,
            cancelled_at=ride.cancelled_at,
            cancellation_reason=ride.cancellation_note or (
                ride.cancellation_reason.value if ride.cancellation_reason else None
            ),
            cancelled_by=ride.cancelled_by.value if ride.cancelled_by else None,
        )


class CancelResponse(BaseModel):
    ride_id: str
    cancelled: bool


class RatingResponse(BaseModel):
    ride_id: str
    rating: int
    comments: list[str] = []
    recorded: bool = True


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
