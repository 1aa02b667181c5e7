"""
Fare Calculator  (Strategy Pattern)
===================================

Formula
-------
Raw  = Base_Fare(class)                                   if distance <= 3 km
Raw  = Base_Fare(class) + (distance - 3) x Rate_Per_KM    otherwise
Fare = round_half_up(Raw / 50) x 50

* The base fare covers the first ``base_distance_km`` kilometres.
* Ride classes differ only in base fare; the marginal rate is shared.
* Rounding to the smallest denomination happens *before* the fare is
  persisted, so the stored amount is the one the driver sees.

Complexity: O(1) per fare.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from src.config import settings

from .enums import RideClass
from .exceptions import ValidationError


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, distance_km: float) -> float: ...


class TieredPricing(PricingStrategy):
    """Flat fare up to the threshold, then a per-km marginal rate."""

    def __init__(
        self, base_fare: float, rate_per_km: float, base_distance_km: float = 3.0
    ):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km
        self.base_distance_km = base_distance_km

    def calculate(self, distance_km: float) -> float:
        extra_km = max(0.0, distance_km - self.base_distance_km)
        return self.base_fare + extra_km * self.rate_per_km


def round_to_unit(amount: float, unit: int = 50) -> int:
    """Round half-up to the nearest multiple of *unit*."""
    return int(math.floor(amount / unit + 0.5)) * unit


# ── Calculator facade ─────────────────────────────────────────────────


@dataclass(frozen=True)
class FareQuote:
    ride_class: RideClass
    fare: int
    distance_km: float
    duration_min: float


class FareCalculator:
    """High-level API used by the session controller and the API layer."""

    def __init__(
        self,
        base_fares: Optional[dict[RideClass, float]] = None,
        rate_per_km: float = settings.rate_per_km,
        base_distance_km: float = settings.base_distance_km,
        rounding_unit: int = settings.fare_rounding_unit,
    ):
        if base_fares is None:
            base_fares = {
                RideClass.PRIVATE: settings.private_base_fare,
                RideClass.MOTO: settings.moto_base_fare,
            }
        self.rounding_unit = rounding_unit
        self._strategies: dict[RideClass, PricingStrategy] = {
            ride_class: TieredPricing(base, rate_per_km, base_distance_km)
            for ride_class, base in base_fares.items()
        }

    def base_fare(self, ride_class: RideClass) -> float:
        return self._strategy(ride_class).calculate(0.0)

    def raw_fare(self, distance_km: float, ride_class: RideClass) -> float:
        if math.isnan(distance_km) or distance_km < 0:
            raise ValidationError(f"Distance must be >= 0 km, got {distance_km}")
        return self._strategy(ride_class).calculate(distance_km)

    def fare(self, distance_km: float, ride_class: RideClass) -> int:
        """Fare to persist on the ride request, already rounded."""
        return round_to_unit(self.raw_fare(distance_km, ride_class), self.rounding_unit)

    def quote_all(
        self, distance_km: float, duration_min: float = 0.0
    ) -> list[FareQuote]:
        return [
            FareQuote(ride_class, self.fare(distance_km, ride_class), distance_km, duration_min)
            for ride_class in self._strategies
        ]

    def _strategy(self, ride_class: RideClass) -> PricingStrategy:
        try:
            return self._strategies[ride_class]
        except KeyError:
            raise ValidationError(f"No pricing for ride class {ride_class}") from None
