"""
Geocoding and routing adapter (Google Maps web services).

* ``reverse_geocode`` -- coordinate to a display address.
* ``route``           -- driving distance, duration and polyline.

Failures are classified so the caller can tell a retryable outage
(``NetworkError`` / ``ServiceUnavailableError``) from a request that will
never succeed (``NoRouteFoundError`` / ``ValidationError``).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import polyline
from pydantic import BaseModel

from src.config import settings
from src.domain.entities import Location
from src.domain.exceptions import (
    NetworkError,
    NoRouteFoundError,
    ServiceUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES = {"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"}
_NO_RESULT_STATUSES = {"ZERO_RESULTS", "NOT_FOUND"}


class RouteInfo(BaseModel):
    distance_km: float
    duration_min: float
    polyline: str = ""

    @property
    def path(self) -> list[tuple[float, float]]:
        return decode_polyline(self.polyline) if self.polyline else []


def decode_polyline(encoded: str, precision: int = 5) -> list[tuple[float, float]]:
    """Decode polyline string to list of (lat, lng) tuples."""
    return [(lat, lng) for lat, lng in polyline.decode(encoded, precision)]


class GeocodingAdapter(ABC):
    @abstractmethod
    async def reverse_geocode(self, location: Location) -> str: ...

    @abstractmethod
    async def route(self, origin: Location, destination: Location) -> RouteInfo: ...


class GoogleMapsGeocoder(GeocodingAdapter):
    def __init__(
        self,
        api_key: str = settings.maps_api_key,
        base_url: str = settings.maps_base_url,
        timeout: float = settings.maps_timeout_seconds,
        language: str = settings.maps_language,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.language = language
        self._client = client

    async def reverse_geocode(self, location: Location) -> str:
        data = await self._get(
            "geocode/json",
            {"latlng": f"{location.latitude},{location.longitude}"},
        )
        status = data.get("status")
        if status in _NO_RESULT_STATUSES or not data.get("results"):
            return f"{location.latitude:.5f}, {location.longitude:.5f}"
        self._check_status(status, data)
        return data["results"][0].get("formatted_address", "")

    async def route(self, origin: Location, destination: Location) -> RouteInfo:
        data = await self._get(
            "directions/json",
            {
                "origin": f"{origin.latitude},{origin.longitude}",
                "destination": f"{destination.latitude},{destination.longitude}",
                "mode": "driving",
            },
        )
        status = data.get("status")
        if status in _NO_RESULT_STATUSES or (status == "OK" and not data.get("routes")):
            raise NoRouteFoundError("No route found between coordinates")
        self._check_status(status, data)

        route = data["routes"][0]
        legs = route.get("legs") or []
        distance_m = sum(leg["distance"]["value"] for leg in legs)
        duration_s = sum(leg["duration"]["value"] for leg in legs)
        return RouteInfo(
            distance_km=round(distance_m / 1000.0, 1),
            duration_min=round(duration_s / 60.0),
            polyline=(route.get("overview_polyline") or {}).get("points", ""),
        )

    # ── Internals ─────────────────────────────────────────────────

    def _check_status(self, status: Optional[str], data: dict[str, Any]) -> None:
        if status == "OK":
            return
        message = data.get("error_message") or f"Maps API status {status}"
        if status in _RETRYABLE_STATUSES:
            raise ServiceUnavailableError(message, {"status": status})
        raise ValidationError(message, {"status": status})

    async def _get(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        url = f"{self.base_url}/{path}"
        params = {**params, "key": self.api_key, "language": self.language}
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Maps API timeout on {path}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Maps API unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise ServiceUnavailableError(
                f"Maps API server error: {response.status_code}",
                {"status_code": response.status_code},
            )
        if response.status_code >= 400:
            raise ValidationError(
                f"Maps API rejected request: {response.status_code}",
                {"status_code": response.status_code},
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ServiceUnavailableError("Maps API returned invalid JSON") from exc
