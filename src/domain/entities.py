"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``RideRequest``: enforces valid lifecycle transitions
  (waiting -> assigned -> active -> completed | declined).
- ``RideRequest.from_document`` / ``to_document`` are the only place the
  flat store representation is read or written, so a loosely-typed
  status string never travels past this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import (
    RIDE_TRANSITIONS,
    TERMINAL_STATUSES,
    CancellationReason,
    CancellingParty,
    RideClass,
    RideStatus,
)
from .exceptions import InvalidSnapshotError, InvalidStateTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise InvalidSnapshotError(f"Bad timestamp {value!r}") from exc


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# Statuses some driver apps write in place of ``active`` plus a flag.
DRIVER_APP_STATUSES: dict[str, dict[str, bool]] = {
    "picked_up": {"customer_picked_up": True},
    "driver_arrived": {"driver_arrived": True},
    "arrived_at_pickup": {"driver_arrived": True},
}


def _cancellation_reason(
    value: Any,
) -> tuple[Optional[CancellationReason], Optional[str]]:
    """Return the known reason and, for free text, the text itself."""
    if not value:
        return None, None
    try:
        return CancellationReason(value), None
    except (TypeError, ValueError):
        return CancellationReason.OTHER, str(value)


def _cancelling_party(value: Any) -> Optional[CancellingParty]:
    try:
        return CancellingParty(value) if value else None
    except (TypeError, ValueError):
        return None


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Place:
    location: Location
    address: str = ""


@dataclass(frozen=True)
class PassengerProfile:
    passenger_id: str
    display_name: str = "Client"
    phone: Optional[str] = None
    photo: Optional[str] = None


@dataclass(frozen=True)
class DriverAssignment:
    """Driver fields written as one group by the matching actor."""

    driver_id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    photo: Optional[str] = None


@dataclass(frozen=True)
class DriverDetails:
    make: str = ""
    model: str = ""
    color: str = ""
    plate: str = ""
    average_rating: Optional[float] = None


@dataclass(frozen=True)
class DriverLocationSample:
    driver_id: str
    location: Location
    received_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PaymentMethod:
    id: str
    type: str = "cash"
    title: str = ""
    is_default: bool = False


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class RideRequest:
    id: Optional[str] = None
    passenger: PassengerProfile = field(
        default_factory=lambda: PassengerProfile(passenger_id="")
    )
    pickup: Place = field(default_factory=lambda: Place(Location(0, 0)))
    destination: Place = field(default_factory=lambda: Place(Location(0, 0)))
    ride_class: RideClass = RideClass.PRIVATE
    fare: float = 0
    distance_km: float = 0.0
    duration_min: float = 0.0
    payment_method: str = ""
    status: RideStatus = RideStatus.WAITING
    driver: Optional[DriverAssignment] = None
    customer_picked_up: bool = False
    driver_arrived: bool = False
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[CancellationReason] = None
    # Free-text reason written by a driver app, kept when it is not a known reason.
    cancellation_note: Optional[str] = None
    cancelled_by: Optional[CancellingParty] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    # ── Store representation ──────────────────────────────────────

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "RideRequest":
        raw_status = data.get("status")
        status_flags = (
            DRIVER_APP_STATUSES.get(raw_status) if isinstance(raw_status, str) else None
        )
        if status_flags is not None:
            raw_status = RideStatus.ACTIVE.value
        try:
            status = RideStatus(raw_status)
            ride_class = RideClass(data.get("ride_class", RideClass.PRIVATE.value))
            pickup = Place(
                Location(float(data["pickup_lat"]), float(data["pickup_lng"])),
                data.get("pickup_address") or "",
            )
            destination = Place(
                Location(
                    float(data["destination_lat"]), float(data["destination_lng"])
                ),
                data.get("destination_address") or "",
            )
            distance_km = float(data.get("distance_km") or 0.0)
            duration_min = float(data.get("duration_min") or 0.0)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidSnapshotError(
                f"Ride {doc_id} snapshot is malformed: {exc}", {"ride_id": doc_id}
            ) from exc

        driver = None
        if data.get("driver_id"):
            driver = DriverAssignment(
                driver_id=data["driver_id"],
                name=data.get("driver_name"),
                phone=data.get("driver_phone"),
                photo=data.get("driver_photo"),
            )

        flags = status_flags or {}
        reason, note = _cancellation_reason(data.get("cancellation_reason"))
        return cls(
            id=doc_id,
            passenger=PassengerProfile(
                passenger_id=data.get("passenger_id", ""),
                display_name=data.get("passenger_name") or "Client",
                phone=data.get("passenger_phone"),
                photo=data.get("passenger_photo"),
            ),
            pickup=pickup,
            destination=destination,
            ride_class=ride_class,
            fare=data.get("fare", 0),
            distance_km=distance_km,
            duration_min=duration_min,
            payment_method=data.get("payment_method") or "",
            status=status,
            driver=driver,
            customer_picked_up=bool(
                data.get("customer_picked_up") or flags.get("customer_picked_up")
            ),
            driver_arrived=bool(data.get("driver_arrived") or flags.get("driver_arrived")),
            created_at=_ts(data.get("created_at")),
            assigned_at=_ts(data.get("assigned_at")),
            cancelled_at=_ts(data.get("cancelled_at")),
            cancellation_reason=reason,
            cancellation_note=note,
            cancelled_by=_cancelling_party(data.get("cancelled_by")),
        )

    def to_document(self) -> dict[str, Any]:
        driver = self.driver
        return {
            "passenger_id": self.passenger.passenger_id,
            "passenger_name": self.passenger.display_name,
            "passenger_phone": self.passenger.phone,
            "passenger_photo": self.passenger.photo,
            "pickup_lat": self.pickup.location.latitude,
            "pickup_lng": self.pickup.location.longitude,
            "pickup_address": self.pickup.address,
            "destination_lat": self.destination.location.latitude,
            "destination_lng": self.destination.location.longitude,
            "destination_address": self.destination.address,
            "ride_class": self.ride_class.value,
            "fare": self.fare,
            "distance_km": self.distance_km,
            "duration_min": self.duration_min,
            "payment_method": self.payment_method,
            "status": self.status.value,
            "customer_picked_up": self.customer_picked_up,
            "driver_arrived": self.driver_arrived,
            "created_at": _iso(self.created_at),
            "assigned_at": _iso(self.assigned_at),
            "cancelled_at": _iso(self.cancelled_at),
            "cancellation_reason": self.cancellation_note or (
                self.cancellation_reason.value if self.cancellation_reason else None
            ),
            "cancelled_by": self.cancelled_by.value if self.cancelled_by else None,
            # Driver group: all null until the matching actor fills it in.
            "driver_id": driver.driver_id if driver else None,
            "driver_name": driver.name if driver else None,
            "driver_phone": driver.phone if driver else None,
            "driver_photo": driver.photo if driver else None,
        }


@dataclass
class Rating:
    ride_id: str
    passenger_id: str
    driver_id: str
    score: int
    comments: list[str] = field(default_factory=list)
    driver_name: Optional[str] = None
    passenger_name: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    # Set once the score has been folded into the driver aggregate.
    aggregated: bool = False

    @property
    def key(self) -> str:
        return f"{self.ride_id}_{self.passenger_id}"

    def to_document(self) -> dict[str, Any]:
        return {
            "ride_id": self.ride_id,
            "passenger_id": self.passenger_id,
            "driver_id": self.driver_id,
            "rating": self.score,
            "comments": list(self.comments),
            "driver_name": self.driver_name,
            "passenger_name": self.passenger_name,
            "created_at": _iso(self.created_at),
            "aggregated": self.aggregated,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Rating":
        return cls(
            ride_id=data["ride_id"],
            passenger_id=data["passenger_id"],
            driver_id=data["driver_id"],
            score=int(data["rating"]),
            comments=list(data.get("comments") or []),
            driver_name=data.get("driver_name"),
            passenger_name=data.get("passenger_name"),
            created_at=_ts(data.get("created_at")) or utcnow(),
            # Ratings written before the flag existed were aggregated inline.
            aggregated=bool(data.get("aggregated", True)),
        )
