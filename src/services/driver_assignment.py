"""
Writes made by the driver side of a ride.

The matching process and the driver app live outside this service.  These
helpers perform the writes they are expected to make, in the shape the
passenger session relies on, so the seed script and tests can play that
role:

* all driver fields plus ``status=assigned`` land in one update;
* trip progress only ever moves the status forward.
"""

from __future__ import annotations

import logging

from src.domain.entities import DriverAssignment, utcnow
from src.domain.enums import RideStatus
from src.domain.exceptions import NotFoundError
from src.infrastructure.repositories import DriverRepository, RideRequestRepository
from src.infrastructure.store import DocumentStore

logger = logging.getLogger(__name__)


async def assign_driver_to_ride(
    store: DocumentStore, ride_id: str, driver_id: str
) -> DriverAssignment:
    driver_doc = await DriverRepository(store).get(driver_id)
    if driver_doc is None:
        raise NotFoundError(f"Driver {driver_id} not found", {"driver_id": driver_id})

    rides = RideRequestRepository(store)
    ride = await rides.require(ride_id)
    ride.transition_to(RideStatus.ASSIGNED)

    name = " ".join(
        part for part in (driver_doc.get("first_name"), driver_doc.get("last_name")) if part
    )
    assignment = DriverAssignment(
        driver_id=driver_id,
        name=name or None,
        phone=driver_doc.get("phone"),
        photo=driver_doc.get("photo"),
    )
    await rides.update_fields(
        ride_id,
        {
            "driver_id": assignment.driver_id,
            "driver_name": assignment.name,
            "driver_phone": assignment.phone,
            "driver_photo": assignment.photo,
            "status": RideStatus.ASSIGNED.value,
            "assigned_at": utcnow().isoformat(),
        },
    )
    logger.info("Driver %s assigned to ride %s", driver_id, ride_id)
    return assignment


async def _advance(store: DocumentStore, ride_id: str, status: RideStatus, **fields) -> None:
    rides = RideRequestRepository(store)
    ride = await rides.require(ride_id)
    if ride.status is not status:
        ride.transition_to(status)
    await rides.update_fields(ride_id, {"status": status.value, **fields})


async def start_trip(store: DocumentStore, ride_id: str) -> None:
    await _advance(store, ride_id, RideStatus.ACTIVE, customer_picked_up=False)


async def mark_driver_arrived(store: DocumentStore, ride_id: str) -> None:
    await RideRequestRepository(store).update_fields(ride_id, {"driver_arrived": True})


async def mark_customer_picked_up(store: DocumentStore, ride_id: str) -> None:
    await _advance(store, ride_id, RideStatus.ACTIVE, customer_picked_up=True)


async def complete_trip(store: DocumentStore, ride_id: str) -> None:
    await _advance(store, ride_id, RideStatus.COMPLETED)
