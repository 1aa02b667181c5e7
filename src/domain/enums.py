"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    WAITING = "waiting"
    ASSIGNED = "assigned"
    ACTIVE = "active"
    COMPLETED = "completed"
    DECLINED = "declined"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.WAITING: {RideStatus.ASSIGNED, RideStatus.DECLINED},
    RideStatus.ASSIGNED: {RideStatus.ACTIVE, RideStatus.DECLINED},
    RideStatus.ACTIVE: {RideStatus.COMPLETED, RideStatus.DECLINED},
    RideStatus.COMPLETED: set(),
    RideStatus.DECLINED: set(),
}

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.DECLINED})


class RideClass(str, enum.Enum):
    PRIVATE = "private"
    MOTO = "moto"


class TripPhase(str, enum.Enum):
    """What the passenger is shown; derived from a ride snapshot."""

    SEARCHING = "searching"
    DRIVER_FOUND = "driver_found"
    PICKUP = "pickup"
    TO_DESTINATION = "to_destination"
    COMPLETED = "completed"
    DECLINED = "declined"

    @property
    def rank(self) -> int:
        return PHASE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (TripPhase.COMPLETED, TripPhase.DECLINED)


# Both terminal phases share the top rank: neither may follow the other.
PHASE_RANK: dict[TripPhase, int] = {
    TripPhase.SEARCHING: 0,
    TripPhase.DRIVER_FOUND: 1,
    TripPhase.PICKUP: 2,
    TripPhase.TO_DESTINATION: 3,
    TripPhase.COMPLETED: 4,
    TripPhase.DECLINED: 4,
}


class CancellingParty(str, enum.Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"


class CancellationReason(str, enum.Enum):
    USER_CANCELLED = "user_cancelled"
    DRIVER_NO_SHOW = "driver_no_show"
    VEHICLE_PROBLEM = "vehicle_problem"
    DESTINATION_CHANGED = "destination_changed"
    OTHER = "other"


# Offered to the passenger once a driver is on the way.
ASSIGNED_CANCELLATION_REASONS = (
    CancellationReason.DRIVER_NO_SHOW,
    CancellationReason.VEHICLE_PROBLEM,
    CancellationReason.DESTINATION_CHANGED,
    CancellationReason.OTHER,
)
