"""Post-trip rating submission."""

from __future__ import annotations

import logging

from src.domain.entities import Rating, RideRequest
from src.domain.enums import RideStatus
from src.domain.exceptions import DocumentExistsError, RatingRejectedError
from src.domain.rating import RatingDraft
from src.infrastructure.repositories import DriverRepository, RatingRepository

logger = logging.getLogger(__name__)


class RatingService:
    def __init__(self, ratings: RatingRepository, drivers: DriverRepository):
        self.ratings = ratings
        self.drivers = drivers

    async def submit(
        self, ride: RideRequest, passenger_id: str, draft: RatingDraft
    ) -> Rating:
        """Record the rating, then fold it into the driver's aggregate.

        The two writes are independent.  If the aggregate write fails the
        rating stays recorded with ``aggregated=False`` and the error
        propagates; submitting again finishes the aggregate with the score
        already stored.  Raises ``DocumentExistsError`` once both are done.
        """
        if not draft.can_submit:
            raise RatingRejectedError("Choose a rating between 1 and 5")
        if ride.status is not RideStatus.COMPLETED:
            raise RatingRejectedError(f"Ride {ride.id} is not completed")
        if ride.driver is None:
            raise RatingRejectedError(f"Ride {ride.id} has no driver to rate")

        rating = Rating(
            ride_id=ride.id,
            passenger_id=passenger_id,
            driver_id=ride.driver.driver_id,
            score=draft.score,
            comments=draft.final_comments(),
            driver_name=ride.driver.name,
            passenger_name=ride.passenger.display_name,
        )
        try:
            await self.ratings.create(rating)
        except DocumentExistsError:
            stored = await self.ratings.get(ride.id, passenger_id)
            if stored is None or stored.aggregated:
                raise
            logger.info("Ride %s rating stored earlier; finishing the aggregate", ride.id)
            rating = stored

        average = await self.drivers.record_rating(rating.driver_id, rating.score)
        await self.ratings.mark_aggregated(rating)
        logger.info(
            "Ride %s rated %d by %s (driver %s now %.2f)",
            ride.id, rating.score, passenger_id, rating.driver_id, average or 0.0,
        )
        return rating
