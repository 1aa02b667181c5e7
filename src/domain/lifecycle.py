"""
Ride lifecycle reducer
======================

Folds ride-request snapshots, as delivered by the real-time store, into the
phase the passenger is shown.

Delivery contract
-----------------
* Every snapshot is the whole current document (last write wins).
* Snapshots may arrive out of order or more than once; the store does not
  promise otherwise.

Rules
-----
1. A snapshot whose phase ranks below the rendered one is stale and ignored.
2. Once a terminal phase is rendered nothing else is applied.
3. A non-null ``driver_id`` means a driver was found, even while ``status``
   still says ``waiting`` (status and driver fields may land separately).
4. One-shot effects (settlement prompt, driver-arrived notice, driver
   assignment) are emitted at most once per session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

from .entities import DriverAssignment, RideRequest
from .enums import RideStatus, TripPhase
from .events import (
    DriverArrived,
    DriverAssigned,
    PhaseChanged,
    RideDeclined,
    SessionEvent,
    SettlementRequested,
)
from .exceptions import InvalidSnapshotError

logger = logging.getLogger(__name__)


def phase_of(ride: RideRequest) -> TripPhase:
    """Map one snapshot to the phase it represents."""
    status = ride.status
    if status is RideStatus.DECLINED:
        return TripPhase.DECLINED
    if status is RideStatus.COMPLETED:
        return TripPhase.COMPLETED
    if status is RideStatus.ACTIVE:
        return TripPhase.TO_DESTINATION if ride.customer_picked_up else TripPhase.PICKUP
    if status in (RideStatus.WAITING, RideStatus.ASSIGNED):
        # The driver id, not the status, is what says a driver was found.
        return TripPhase.DRIVER_FOUND if ride.driver else TripPhase.SEARCHING
    raise InvalidSnapshotError(f"Unhandled ride status {status!r}")


@dataclass(frozen=True)
class LifecycleState:
    phase: Optional[TripPhase] = None
    ride: Optional[RideRequest] = None
    driver: Optional[DriverAssignment] = None
    driver_arrived_seen: bool = False
    settlement_presented: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.phase is not None and self.phase.is_terminal


def reduce(
    state: LifecycleState, ride: RideRequest
) -> tuple[LifecycleState, list[SessionEvent]]:
    """Apply one snapshot; return the new state and the events it caused."""
    if state.is_terminal:
        return state, []

    observed = phase_of(ride)
    if state.phase is not None and observed.rank < state.phase.rank:
        logger.debug(
            "Ignoring stale snapshot for ride %s (%s < %s)",
            ride.id, observed.value, state.phase.value,
        )
        return state, []

    events: list[SessionEvent] = []
    new_state = replace(state, phase=observed, ride=ride)

    if observed != state.phase:
        events.append(PhaseChanged(state.phase, observed))

    if not observed.is_terminal and ride.driver and state.driver is None:
        new_state = replace(new_state, driver=ride.driver)
        events.append(DriverAssigned(ride.driver))

    if (
        ride.driver_arrived
        and not state.driver_arrived_seen
        and observed in (TripPhase.DRIVER_FOUND, TripPhase.PICKUP)
    ):
        new_state = replace(new_state, driver_arrived_seen=True)
        events.append(DriverArrived())

    if observed is TripPhase.COMPLETED and not state.settlement_presented:
        new_state = replace(new_state, settlement_presented=True)
        events.append(SettlementRequested(fare=ride.fare))

    if observed is TripPhase.DECLINED:
        events.append(RideDeclined(ride.cancelled_by, ride.cancellation_reason))

    return new_state, events


class RideLifecycleMachine:
    """Holds the reducer state for one ride and parses raw snapshots."""

    def __init__(self, ride_id: str):
        self.ride_id = ride_id
        self.state = LifecycleState()

    @property
    def phase(self) -> Optional[TripPhase]:
        return self.state.phase

    @property
    def ride(self) -> Optional[RideRequest]:
        return self.state.ride

    def apply(self, data: Optional[dict[str, Any]]) -> list[SessionEvent]:
        """Apply a raw store snapshot.  Unreadable snapshots are dropped."""
        if data is None:
            logger.warning("Ride %s snapshot has no document", self.ride_id)
            return []
        try:
            ride = RideRequest.from_document(self.ride_id, data)
        except InvalidSnapshotError as exc:
            logger.warning("Dropping unreadable snapshot: %s", exc.message)
            return []
        self.state, events = reduce(self.state, ride)
        for event in events:
            if isinstance(event, PhaseChanged):
                logger.info(
                    "Ride %s phase %s -> %s",
                    self.ride_id,
                    event.previous.value if event.previous else None,
                    event.current.value,
                )
        return events
