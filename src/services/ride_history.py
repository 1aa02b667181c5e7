"""Live lists of a passenger's rides (current trips, past trips)."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from src.domain.entities import RideRequest
from src.domain.enums import RideStatus
from src.infrastructure.repositories import RideRequestRepository
from src.infrastructure.store import LostCallback, Subscription

logger = logging.getLogger(__name__)

RidesCallback = Callable[[list[RideRequest]], Awaitable[None]]


class RideHistory:
    def __init__(self, rides: RideRequestRepository, passenger_id: str):
        self.rides = rides
        self.passenger_id = passenger_id
        self._subscriptions: list[Subscription] = []

    async def fetch(self, status: RideStatus, limit: Optional[int] = None) -> list[RideRequest]:
        return await self.rides.list_for_passenger(self.passenger_id, status, limit)

    async def completed(self, limit: Optional[int] = None) -> list[RideRequest]:
        return await self.fetch(RideStatus.COMPLETED, limit)

    async def watch(
        self,
        status: RideStatus,
        callback: RidesCallback,
        limit: Optional[int] = None,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        subscription = await self.rides.watch_for_passenger(
            self.passenger_id, status, callback, limit, on_lost
        )
        self._subscriptions.append(subscription)
        logger.debug("Watching %s rides for passenger %s", status.value, self.passenger_id)
        return subscription

    async def watch_current(self, callback: RidesCallback) -> Subscription:
        return await self.watch(RideStatus.ACTIVE, callback)

    async def watch_completed(self, callback: RidesCallback) -> Subscription:
        return await self.watch(RideStatus.COMPLETED, callback)

    async def close(self) -> None:
        for subscription in self._subscriptions:
            await subscription.unsubscribe()
        self._subscriptions.clear()
