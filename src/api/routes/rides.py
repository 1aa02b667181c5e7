"""
Ride endpoints
==============

POST /api/v1/quotes                  -- route and per-class fares for a trip
POST /api/v1/rides                   -- create a ride request (returns 202 Accepted)
GET  /api/v1/rides/history           -- the passenger's rides, newest first
GET  /api/v1/rides/{ride_id}         -- status, phase and driver of a ride
POST /api/v1/rides/{ride_id}/cancel  -- cancel a ride
POST /api/v1/rides/{ride_id}/rating  -- rate the driver of a completed ride
WS   /api/v1/rides/history/events    -- live list of current or completed rides
WS   /api/v1/rides/{ride_id}/events  -- live session events, hold-to-cancel
"""

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect

from src.api.dependencies import get_registry, get_session_context
from src.api.middleware import limiter
from src.api.schemas import (
    CancelRequest,
    CancelResponse,
    FareQuoteResponse,
    QuoteRequest,
    QuoteResponse,
    RatingRequest,
    RatingResponse,
    RideCreateRequest,
    RideResponse,
)
from src.api.sessions import SessionRegistry
from src.config import settings
from src.domain.enums import CancellationReason, RideStatus
from src.domain.events import Navigate
from src.domain.exceptions import RideError, RideNotFoundError
from src.services.ride_history import RideHistory
from src.services.session import SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rides", tags=["rides"])
quotes_router = APIRouter(tags=["quotes"])


@quotes_router.post(
    "/quotes",
    response_model=QuoteResponse,
    summary="Quote a trip for every ride class",
)
@limiter.limit(settings.rate_limit)
async def quote_trip(
    request: Request,
    body: QuoteRequest,
    context: SessionContext = Depends(get_session_context),
):
    route = await context.geocoder.route(body.pickup.to_place().location, body.destination.to_place().location)
    quotes = context.fares.quote_all(route.distance_km, route.duration_min)
    return QuoteResponse(
        distance_km=route.distance_km,
        duration_min=route.duration_min,
        polyline=route.polyline,
        fares=[FareQuoteResponse(ride_class=q.ride_class, fare=q.fare) for q in quotes],
    )


@router.post(
    "",
    status_code=202,
    response_model=RideResponse,
    summary="Create a ride request",
    responses={202: {"description": "Ride request accepted; a driver is searched for asynchronously."}},
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    context: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_registry),
):
    controller = registry.new_session(context)
    try:
        ride = await controller.request_ride(
            body.pickup.to_place(),
            body.destination.to_place(),
            body.ride_class,
            payment_method=body.payment_method,
        )
    except RideError:
        await controller.dispose()
        raise
    registry.register(controller)
    return RideResponse.from_ride(controller.ride or ride)


@router.get(
    "/history",
    response_model=list[RideResponse],
    summary="List the passenger's rides",
)
@limiter.limit(settings.rate_limit)
async def ride_history(
    request: Request,
    status: RideStatus = Query(RideStatus.COMPLETED),
    limit: int = Query(20, ge=1, le=100),
    context: SessionContext = Depends(get_session_context),
):
    rides = await RideHistory(context.rides, context.passenger_id).fetch(status, limit)
    return [RideResponse.from_ride(ride) for ride in rides]


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get ride status, phase and driver",
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: str,
    context: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_registry),
):
    controller = registry.get(ride_id)
    if controller is not None and controller.context.passenger_id == context.passenger_id:
        if controller.ride is not None:
            return RideResponse.from_ride(controller.ride, controller.phase.value)

    ride = await context.rides.require(ride_id)
    if ride.passenger.passenger_id != context.passenger_id:
        raise RideNotFoundError(f"Ride {ride_id} not found", {"ride_id": ride_id})
    return RideResponse.from_ride(ride)


@router.post(
    "/{ride_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel a ride",
    description=(
        "Moves a waiting, assigned or active ride to declined. "
        "Once a driver is assigned a cancellation reason is required."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: str,
    body: CancelRequest,
    context: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_registry),
):
    controller = await registry.follow(context, ride_id)
    cancelled = await controller.cancel(body.reason)
    await registry.release_if_idle(ride_id)
    return CancelResponse(ride_id=ride_id, cancelled=cancelled)


@router.post(
    "/{ride_id}/rating",
    response_model=RatingResponse,
    summary="Rate the driver of a completed ride",
)
@limiter.limit(settings.rate_limit)
async def rate_ride(
    request: Request,
    ride_id: str,
    body: RatingRequest,
    context: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_registry),
):
    controller = await registry.follow(context, ride_id)
    rating = await controller.submit_rating(body.rating, body.comments, body.other_text)
    await registry.release_if_idle(ride_id)
    if rating is None:
        return RatingResponse(ride_id=ride_id, rating=body.rating, recorded=False)
    return RatingResponse(ride_id=ride_id, rating=rating.score, comments=rating.comments)


# ── Live events ───────────────────────────────────────────────────────


def _passenger_of(websocket: WebSocket) -> Optional[str]:
    return websocket.headers.get("x-passenger-id") or websocket.query_params.get(
        "passenger_id"
    )


def _context_of(websocket: WebSocket, passenger_id: str) -> SessionContext:
    state = websocket.app.state
    return SessionContext(
        store=state.store, geocoder=state.geocoder, passenger_id=passenger_id, fares=state.fares
    )


async def _handle_command(controller, message: Any) -> None:
    if not isinstance(message, dict):
        raise ValueError("Commands must be JSON objects")
    action = message.get("action")
    if action == "reason":
        raw: Optional[str] = message.get("reason")
        controller.choose_cancellation_reason(CancellationReason(raw) if raw else None)
    elif action == "press_cancel":
        controller.press_cancel()
    elif action == "release_cancel":
        controller.release_cancel()
    elif action == "reconnect":
        await controller.reconnect()
    else:
        logger.debug("Unknown session command %r", action)


@router.websocket("/history/events")
async def history_events(websocket: WebSocket):
    """Push the passenger's ride list (``status`` = active or completed) on every change."""
    passenger_id = _passenger_of(websocket)
    try:
        status = RideStatus(websocket.query_params.get("status", RideStatus.ACTIVE.value))
    except ValueError:
        status = None
    if not passenger_id or status not in (RideStatus.ACTIVE, RideStatus.COMPLETED):
        await websocket.close(code=1008)
        return

    await websocket.accept()
    history = RideHistory(_context_of(websocket, passenger_id).rides, passenger_id)
    updates: asyncio.Queue = asyncio.Queue()

    async def on_rides(rides) -> None:
        updates.put_nowait(
            {
                "type": "Rides",
                "status": status.value,
                "rides": [RideResponse.from_ride(r).model_dump(mode="json") for r in rides],
            }
        )

    async def on_lost(exc: Exception) -> None:
        updates.put_nowait({"type": "Error", "message": str(exc)})

    try:
        await history.watch(status, on_rides, on_lost=on_lost)
    except RideError as exc:
        await websocket.send_json({"type": "Error", "message": exc.message})
        await websocket.close(code=1011)
        return

    async def sender() -> None:
        while True:
            await websocket.send_json(await updates.get())

    async def receiver() -> None:
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(sender()), asyncio.create_task(receiver())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("History stream for %s ended: %s", passenger_id, exc)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await history.close()


@router.websocket("/{ride_id}/events")
async def ride_events(websocket: WebSocket, ride_id: str):
    """Stream session events; accepts hold-to-cancel commands from the client.

    Commands are JSON objects with an ``action`` of ``reason`` (plus
    ``reason``), ``press_cancel``, ``release_cancel`` or ``reconnect``.
    Once the ride is over and the closing navigation has been sent, the
    server closes the socket with code 1000.
    """
    passenger_id = _passenger_of(websocket)
    if not passenger_id:
        await websocket.close(code=1008)
        return

    context = _context_of(websocket, passenger_id)
    registry: SessionRegistry = websocket.app.state.registry

    await websocket.accept()
    queue = registry.stream(ride_id)
    try:
        controller = await registry.follow(context, ride_id)
    except RideError as exc:
        registry.unstream(ride_id, queue)
        await websocket.send_json({"type": "Error", "message": exc.message})
        await websocket.close(code=1008)
        return

    if controller.ride is not None:
        await websocket.send_json(
            {"type": "Snapshot", "ride": RideResponse.from_ride(controller.ride).model_dump(mode="json")}
        )

    async def sender() -> None:
        while True:
            event = await queue.get()
            await websocket.send_json(event.as_dict())
            if isinstance(event, Navigate) and controller.is_finished:
                return

    async def receiver() -> None:
        while True:
            text = await websocket.receive_text()
            try:
                await _handle_command(controller, json.loads(text))
            except ValueError as exc:
                await websocket.send_json({"type": "Error", "message": str(exc)})
            except RideError as exc:
                # Already surfaced to the client as an alert.
                logger.info("Command on ride %s failed: %s", ride_id, exc.message)

    tasks = [asyncio.create_task(sender()), asyncio.create_task(receiver())]
    finished = False
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is None:
                finished = True
            elif not isinstance(exc, WebSocketDisconnect):
                logger.warning("Event stream for ride %s ended: %s", ride_id, exc)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        registry.unstream(ride_id, queue)
        # A disconnect mid-hold must not cancel the ride.
        controller.release_cancel()
        await registry.release_if_idle(ride_id)

    if finished:
        await websocket.close(code=1000)
