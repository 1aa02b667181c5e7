"""Events emitted by a passenger session towards whatever renders it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .entities import DriverAssignment, DriverDetails, DriverLocationSample
from .enums import CancellationReason, CancellingParty, TripPhase


class Destination:
    HOME = "home"
    ACTIVITY = "activity"
    AUTHENTICATION = "authentication"


@dataclass(frozen=True)
class SessionEvent:
    @property
    def kind(self) -> str:
        return type(self).__name__

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.kind}


@dataclass(frozen=True)
class PhaseChanged(SessionEvent):
    previous: Optional[TripPhase]
    current: TripPhase

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "previous": self.previous.value if self.previous else None,
            "current": self.current.value,
        }


@dataclass(frozen=True)
class DriverAssigned(SessionEvent):
    driver: DriverAssignment

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "driver_id": self.driver.driver_id,
            "name": self.driver.name,
            "phone": self.driver.phone,
            "photo": self.driver.photo,
        }


@dataclass(frozen=True)
class DriverDetailsLoaded(SessionEvent):
    details: DriverDetails

    def as_dict(self) -> dict[str, Any]:
        d = self.details
        return {
            "type": self.kind,
            "make": d.make,
            "model": d.model,
            "color": d.color,
            "plate": d.plate,
            "average_rating": d.average_rating,
        }


@dataclass(frozen=True)
class DriverArrived(SessionEvent):
    pass


@dataclass(frozen=True)
class DriverLocationUpdated(SessionEvent):
    sample: DriverLocationSample
    distance_to_pickup_km: Optional[float] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "driver_id": self.sample.driver_id,
            "latitude": self.sample.location.latitude,
            "longitude": self.sample.location.longitude,
            "distance_to_pickup_km": self.distance_to_pickup_km,
        }


@dataclass(frozen=True)
class SettlementRequested(SessionEvent):
    fare: float

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "fare": self.fare}


@dataclass(frozen=True)
class RideDeclined(SessionEvent):
    cancelled_by: Optional[CancellingParty] = None
    reason: Optional[CancellationReason] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "cancelled_by": self.cancelled_by.value if self.cancelled_by else None,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass(frozen=True)
class Navigate(SessionEvent):
    destination: str

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "destination": self.destination}


@dataclass(frozen=True)
class ShowAlert(SessionEvent):
    """A localized alert with exactly one acknowledgement action."""

    title: str
    message: str
    actions: tuple[str, ...] = field(default=("OK",))

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "title": self.title,
            "message": self.message,
            "actions": list(self.actions),
        }
