"""Live driver position, subscribed once a driver is assigned."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from src.domain.distance import distance_between
from src.domain.entities import DriverLocationSample, Location
from src.infrastructure.repositories import DriverRepository, location_sample
from src.infrastructure.store import Document, Subscription

logger = logging.getLogger(__name__)

SampleCallback = Callable[[DriverLocationSample, Optional[float]], Awaitable[None]]


class DriverLocationFeed:
    def __init__(
        self,
        drivers: DriverRepository,
        driver_id: str,
        pickup: Optional[Location] = None,
    ):
        self.drivers = drivers
        self.driver_id = driver_id
        self.pickup = pickup
        self.latest: Optional[DriverLocationSample] = None
        self._subscription: Optional[Subscription] = None
        self._on_sample: Optional[SampleCallback] = None

    @property
    def running(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    def distance_to_pickup(self) -> Optional[float]:
        if self.latest is None or self.pickup is None:
            return None
        return distance_between(self.latest.location, self.pickup)

    async def start(self, on_sample: SampleCallback) -> None:
        if self.running:
            return
        self._on_sample = on_sample
        self._subscription = await self.drivers.subscribe(self.driver_id, self._handle)
        logger.info("Driver location feed started for %s", self.driver_id)

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None
            logger.info("Driver location feed stopped for %s", self.driver_id)

    async def _handle(self, data: Optional[Document]) -> None:
        sample = location_sample(self.driver_id, data)
        if sample is None:
            return
        self.latest = sample
        if self._on_sample is not None:
            await self._on_sample(sample, self.distance_to_pickup())
