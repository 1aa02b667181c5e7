"""
Repository Pattern -- typed access to the document collections so the
session logic never touches raw documents.

Each repository receives a ``DocumentStore`` and exposes domain-relevant
reads, writes and subscriptions only.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from src.domain.entities import (
    DriverDetails,
    DriverLocationSample,
    Location,
    PassengerProfile,
    PaymentMethod,
    Rating,
    RideRequest,
    utcnow,
)
from src.domain.enums import RideStatus
from src.domain.exceptions import InvalidSnapshotError, RideNotFoundError
from src.domain.rating import mean_rating

from .store import (
    Document,
    DocumentCallback,
    DocumentStore,
    LostCallback,
    Query,
    Subscription,
)

logger = logging.getLogger(__name__)

RIDE_REQUESTS = "ride_requests"
RIDE_REQUESTS_DRIVER = "ride_requests_driver"
CUSTOMERS = "customers"
DRIVERS = "drivers"
DRIVER_RATINGS = "driver_ratings"
PAYMENT_METHODS = "payment_methods"


class RideRequestRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def create(self, ride: RideRequest) -> RideRequest:
        ride.created_at = ride.created_at or utcnow()
        ride.id = await self.store.create(RIDE_REQUESTS, ride.to_document())
        return ride

    async def create_driver_copy(self, ride: RideRequest) -> str:
        """Duplicate record read by the driver app; written independently."""
        return await self.store.create(
            RIDE_REQUESTS_DRIVER,
            {
                "ride_request_id": ride.id,
                "number": ride.passenger.phone,
                "photo": ride.passenger.photo,
                "first_name": ride.passenger.display_name,
                "created_at": utcnow().isoformat(),
            },
        )

    async def get_by_id(self, ride_id: str) -> Optional[RideRequest]:
        data = await self.store.get(RIDE_REQUESTS, ride_id)
        if data is None:
            return None
        return RideRequest.from_document(ride_id, data)

    async def require(self, ride_id: str) -> RideRequest:
        ride = await self.get_by_id(ride_id)
        if ride is None:
            raise RideNotFoundError(f"Ride {ride_id} not found", {"ride_id": ride_id})
        return ride

    async def update_fields(self, ride_id: str, fields: Document) -> Document:
        return await self.store.update(RIDE_REQUESTS, ride_id, fields)

    async def subscribe(
        self,
        ride_id: str,
        callback: DocumentCallback,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        return await self.store.subscribe(RIDE_REQUESTS, ride_id, callback, on_lost)

    def _passenger_query(
        self, passenger_id: str, status: RideStatus, limit: Optional[int]
    ) -> Query:
        return Query(
            collection=RIDE_REQUESTS,
            filters={"passenger_id": passenger_id, "status": status.value},
            order_by="created_at",
            descending=True,
            limit=limit,
        )

    async def list_for_passenger(
        self, passenger_id: str, status: RideStatus, limit: Optional[int] = None
    ) -> list[RideRequest]:
        rows = await self.store.query(self._passenger_query(passenger_id, status, limit))
        return _parse_rides(rows)

    async def watch_for_passenger(
        self,
        passenger_id: str,
        status: RideStatus,
        callback: Callable[[list[RideRequest]], Awaitable[None]],
        limit: Optional[int] = None,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        async def on_rows(rows: list[tuple[str, Document]]) -> None:
            await callback(_parse_rides(rows))

        return await self.store.subscribe_query(
            self._passenger_query(passenger_id, status, limit), on_rows, on_lost
        )


def _parse_rides(rows: list[tuple[str, Document]]) -> list[RideRequest]:
    rides = []
    for doc_id, data in rows:
        try:
            rides.append(RideRequest.from_document(doc_id, data))
        except InvalidSnapshotError as exc:
            logger.warning("Skipping unreadable ride in list: %s", exc.message)
    return rides


class CustomerRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_profile(self, passenger_id: str) -> PassengerProfile:
        data = await self.store.get(CUSTOMERS, passenger_id)
        if data is None:
            return PassengerProfile(passenger_id=passenger_id)
        return PassengerProfile(
            passenger_id=passenger_id,
            display_name=data.get("first_name") or "Client",
            phone=data.get("phone"),
            photo=data.get("photo"),
        )


class PaymentMethodRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def list_for_passenger(
        self, passenger_id: str, limit: int = 10
    ) -> list[PaymentMethod]:
        rows = await self.store.query(
            Query(
                collection=PAYMENT_METHODS,
                filters={"passenger_id": passenger_id},
                descending=False,
                limit=limit,
            )
        )
        return [
            PaymentMethod(
                id=doc_id,
                type=data.get("type") or "cash",
                title=data.get("title") or "",
                is_default=bool(data.get("is_default")),
            )
            for doc_id, data in rows
        ]


class DriverRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, driver_id: str) -> Optional[Document]:
        return await self.store.get(DRIVERS, driver_id)

    async def get_details(self, driver_id: str) -> Optional[DriverDetails]:
        data = await self.get(driver_id)
        if data is None:
            return None
        return DriverDetails(
            make=data.get("car_make") or "",
            model=data.get("car_model") or "",
            color=data.get("car_color") or "",
            plate=data.get("plate") or "",
            average_rating=data.get("average_rating"),
        )

    async def subscribe(self, driver_id: str, callback: DocumentCallback) -> Subscription:
        return await self.store.subscribe(DRIVERS, driver_id, callback)

    async def record_rating(self, driver_id: str, score: int) -> Optional[float]:
        """Fold one score into the driver's aggregate and return the new mean.

        The (sum, count) pair is incremented atomically; the mean is then
        recomputed from it and written back.  Two raters racing may write
        the mean in either order, but the pair itself never loses a score
        and the next write corrects the mean.
        """
        totals = await self.store.increment(
            DRIVERS, driver_id, {"rating_sum": score, "rating_count": 1}
        )
        average = mean_rating(totals.get("rating_sum") or 0, int(totals.get("rating_count") or 0))
        await self.store.update(
            DRIVERS,
            driver_id,
            {"average_rating": average, "total_ratings": totals.get("rating_count")},
        )
        return average


def location_sample(driver_id: str, data: Optional[Document]) -> Optional[DriverLocationSample]:
    """Read a driver document as a location sample, if it carries one."""
    if not data:
        return None
    lat, lng = data.get("latitude"), data.get("longitude")
    if lat is None or lng is None:
        return None
    try:
        return DriverLocationSample(driver_id, Location(float(lat), float(lng)))
    except (TypeError, ValueError):
        return None


class RatingRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def create(self, rating: Rating) -> str:
        """Write once per (ride, passenger); a second write raises."""
        return await self.store.create(DRIVER_RATINGS, rating.to_document(), doc_id=rating.key)

    async def get(self, ride_id: str, passenger_id: str) -> Optional[Rating]:
        data = await self.store.get(DRIVER_RATINGS, f"{ride_id}_{passenger_id}")
        return Rating.from_document(data) if data is not None else None

    async def exists(self, ride_id: str, passenger_id: str) -> bool:
        return await self.store.get(DRIVER_RATINGS, f"{ride_id}_{passenger_id}") is not None

    async def mark_aggregated(self, rating: Rating) -> None:
        await self.store.update(DRIVER_RATINGS, rating.key, {"aggregated": True})
        rating.aggregated = True
