"""Unit tests for the ride lifecycle reducer."""

from src.domain.entities import DriverAssignment, Location, PassengerProfile, Place, RideRequest
from src.domain.enums import CancellationReason, CancellingParty, RideStatus, TripPhase
from src.domain.events import (
    DriverArrived,
    DriverAssigned,
    PhaseChanged,
    RideDeclined,
    SettlementRequested,
)
from src.domain.lifecycle import LifecycleState, RideLifecycleMachine, phase_of, reduce

DRIVER = DriverAssignment("drv-1", "Ibrahim", "+2250712345678")


def snapshot(status: RideStatus = RideStatus.WAITING, driver=None, **kwargs) -> dict:
    ride = RideRequest(
        id="r1",
        passenger=PassengerProfile("cust-1"),
        pickup=Place(Location(5.31, -4.01)),
        destination=Place(Location(5.35, -3.98)),
        fare=550,
        status=status,
        driver=driver,
        **kwargs,
    )
    return ride.to_document()


def kinds(events) -> list[type]:
    return [type(e) for e in events]


class TestPhaseOf:
    def test_waiting_without_driver_is_searching(self):
        assert phase_of(RideRequest(status=RideStatus.WAITING)) is TripPhase.SEARCHING

    def test_driver_id_wins_over_waiting_status(self):
        ride = RideRequest(status=RideStatus.WAITING, driver=DRIVER)
        assert phase_of(ride) is TripPhase.DRIVER_FOUND

    def test_assigned_is_driver_found(self):
        ride = RideRequest(status=RideStatus.ASSIGNED, driver=DRIVER)
        assert phase_of(ride) is TripPhase.DRIVER_FOUND

    def test_active_before_pickup(self):
        ride = RideRequest(status=RideStatus.ACTIVE, driver=DRIVER)
        assert phase_of(ride) is TripPhase.PICKUP

    def test_active_after_pickup(self):
        ride = RideRequest(status=RideStatus.ACTIVE, driver=DRIVER, customer_picked_up=True)
        assert phase_of(ride) is TripPhase.TO_DESTINATION

    def test_terminal_statuses(self):
        assert phase_of(RideRequest(status=RideStatus.COMPLETED)) is TripPhase.COMPLETED
        assert phase_of(RideRequest(status=RideStatus.DECLINED)) is TripPhase.DECLINED


class TestReducer:
    def test_first_snapshot_sets_phase(self):
        state, events = reduce(LifecycleState(), RideRequest.from_document("r1", snapshot()))
        assert state.phase is TripPhase.SEARCHING
        assert events == [PhaseChanged(None, TripPhase.SEARCHING)]

    def test_same_snapshot_twice_emits_nothing_new(self):
        ride = RideRequest.from_document("r1", snapshot())
        state, _ = reduce(LifecycleState(), ride)
        state, events = reduce(state, ride)
        assert events == []
        assert state.phase is TripPhase.SEARCHING


class TestRideLifecycleMachine:
    def test_full_forward_sequence(self):
        machine = RideLifecycleMachine("r1")
        seen = []
        for data in (
            snapshot(),
            snapshot(RideStatus.ASSIGNED, DRIVER),
            snapshot(RideStatus.ACTIVE, DRIVER),
            snapshot(RideStatus.ACTIVE, DRIVER, customer_picked_up=True),
            snapshot(RideStatus.COMPLETED, DRIVER, customer_picked_up=True),
        ):
            machine.apply(data)
            seen.append(machine.phase)
        assert seen == [
            TripPhase.SEARCHING,
            TripPhase.DRIVER_FOUND,
            TripPhase.PICKUP,
            TripPhase.TO_DESTINATION,
            TripPhase.COMPLETED,
        ]

    def test_stale_snapshot_is_ignored(self):
        machine = RideLifecycleMachine("r1")
        machine.apply(snapshot(RideStatus.ASSIGNED, DRIVER))
        events = machine.apply(snapshot())
        assert events == []
        assert machine.phase is TripPhase.DRIVER_FOUND

    def test_out_of_order_pickup_snapshots(self):
        machine = RideLifecycleMachine("r1")
        machine.apply(snapshot(RideStatus.ACTIVE, DRIVER, customer_picked_up=True))
        machine.apply(snapshot(RideStatus.ACTIVE, DRIVER))
        assert machine.phase is TripPhase.TO_DESTINATION

    def test_driver_id_with_waiting_status_reports_driver(self):
        machine = RideLifecycleMachine("r1")
        events = machine.apply(snapshot(RideStatus.WAITING, DRIVER))
        assert machine.phase is TripPhase.DRIVER_FOUND
        assert DriverAssigned(DRIVER) in events

    def test_driver_assigned_emitted_once(self):
        machine = RideLifecycleMachine("r1")
        first = machine.apply(snapshot(RideStatus.WAITING, DRIVER))
        second = machine.apply(snapshot(RideStatus.ASSIGNED, DRIVER))
        assert kinds(first).count(DriverAssigned) == 1
        assert DriverAssigned not in kinds(second)

    def test_settlement_requested_once(self):
        machine = RideLifecycleMachine("r1")
        machine.apply(snapshot(RideStatus.ACTIVE, DRIVER, customer_picked_up=True))
        done = snapshot(RideStatus.COMPLETED, DRIVER, customer_picked_up=True)
        first = machine.apply(done)
        second = machine.apply(done)
        assert SettlementRequested(fare=550) in first
        assert second == []

    def test_declined_from_every_phase(self):
        for before in (
            snapshot(),
            snapshot(RideStatus.ASSIGNED, DRIVER),
            snapshot(RideStatus.ACTIVE, DRIVER),
            snapshot(RideStatus.ACTIVE, DRIVER, customer_picked_up=True),
        ):
            machine = RideLifecycleMachine("r1")
            machine.apply(before)
            events = machine.apply(
                snapshot(
                    RideStatus.DECLINED,
                    cancellation_reason=CancellationReason.USER_CANCELLED,
                    cancelled_by=CancellingParty.CUSTOMER,
                )
            )
            assert machine.phase is TripPhase.DECLINED
            assert RideDeclined(CancellingParty.CUSTOMER, CancellationReason.USER_CANCELLED) in events

    def test_nothing_follows_a_terminal_phase(self):
        machine = RideLifecycleMachine("r1")
        machine.apply(snapshot(RideStatus.DECLINED))
        assert machine.apply(snapshot(RideStatus.COMPLETED, DRIVER)) == []
        assert machine.phase is TripPhase.DECLINED

    def test_driver_arrived_notice_once(self):
        machine = RideLifecycleMachine("r1")
        machine.apply(snapshot(RideStatus.ASSIGNED, DRIVER))
        first = machine.apply(snapshot(RideStatus.ASSIGNED, DRIVER, driver_arrived=True))
        second = machine.apply(snapshot(RideStatus.ACTIVE, DRIVER, driver_arrived=True))
        assert DriverArrived() in first
        assert DriverArrived not in kinds(second)

    def test_unreadable_snapshot_is_dropped(self):
        machine = RideLifecycleMachine("r1")
        machine.apply(snapshot(RideStatus.ASSIGNED, DRIVER))
        bad = snapshot(RideStatus.ASSIGNED, DRIVER)
        bad["status"] = "lost"
        assert machine.apply(bad) == []
        assert machine.phase is TripPhase.DRIVER_FOUND

    def test_driver_decline_with_free_text_reason(self):
        machine = RideLifecycleMachine("r1")
        machine.apply(snapshot(RideStatus.ASSIGNED, DRIVER))
        data = snapshot(RideStatus.DECLINED, DRIVER)
        data["cancelled_by"] = "driver"
        data["cancellation_reason"] = "driver_cancelled"
        events = machine.apply(data)
        assert machine.phase is TripPhase.DECLINED
        assert RideDeclined(CancellingParty.DRIVER, CancellationReason.OTHER) in events

    def test_driver_app_statuses_advance_the_phase(self):
        machine = RideLifecycleMachine("r1")
        machine.apply(snapshot(RideStatus.ASSIGNED, DRIVER))
        arrived = snapshot(RideStatus.ACTIVE, DRIVER)
        arrived["status"] = "arrived_at_pickup"
        events = machine.apply(arrived)
        assert machine.phase is TripPhase.PICKUP
        assert DriverArrived() in events

        picked = snapshot(RideStatus.ACTIVE, DRIVER)
        picked["status"] = "picked_up"
        machine.apply(picked)
        assert machine.phase is TripPhase.TO_DESTINATION

    def test_missing_document_is_dropped(self):
        machine = RideLifecycleMachine("r1")
        assert machine.apply(None) == []
        assert machine.phase is None
