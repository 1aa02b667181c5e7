"""Injected dependencies of one passenger session."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import Optional

from src.domain.exceptions import NotAuthenticatedError
from src.domain.pricing import FareCalculator
from src.infrastructure.geocoding import GeocodingAdapter
from src.infrastructure.repositories import (
    CustomerRepository,
    DriverRepository,
    PaymentMethodRepository,
    RatingRepository,
    RideRequestRepository,
)
from src.infrastructure.store import DocumentStore


@dataclass
class SessionContext:
    store: DocumentStore
    geocoder: GeocodingAdapter
    passenger_id: Optional[str] = None
    fares: FareCalculator = field(default_factory=FareCalculator)

    def require_passenger(self) -> str:
        if not self.passenger_id:
            raise NotAuthenticatedError("You must be signed in to request a ride")
        return self.passenger_id

    @cached_property
    def rides(self) -> RideRequestRepository:
        return RideRequestRepository(self.store)

    @cached_property
    def customers(self) -> CustomerRepository:
        return CustomerRepository(self.store)

    @cached_property
    def drivers(self) -> DriverRepository:
        return DriverRepository(self.store)

    @cached_property
    def ratings(self) -> RatingRepository:
        return RatingRepository(self.store)

    @cached_property
    def payment_methods(self) -> PaymentMethodRepository:
        return PaymentMethodRepository(self.store)
