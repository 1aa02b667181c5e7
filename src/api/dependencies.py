"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from src.domain.pricing import FareCalculator
from src.infrastructure.geocoding import GeocodingAdapter
from src.infrastructure.store import DocumentStore
from src.services.session import SessionContext

from .sessions import SessionRegistry


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_geocoder(request: Request) -> GeocodingAdapter:
    return request.app.state.geocoder


def get_fares(request: Request) -> FareCalculator:
    return request.app.state.fares


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_passenger_id(
    x_passenger_id: Optional[str] = Header(None),
) -> str:
    """The signed-in passenger; requests without one go back to sign-in."""
    if not x_passenger_id:
        raise HTTPException(status_code=401, detail="Sign in required")
    return x_passenger_id


def get_session_context(
    passenger_id: str = Depends(get_passenger_id),
    store: DocumentStore = Depends(get_store),
    geocoder: GeocodingAdapter = Depends(get_geocoder),
    fares: FareCalculator = Depends(get_fares),
) -> SessionContext:
    return SessionContext(store=store, geocoder=geocoder, passenger_id=passenger_id, fares=fares)
