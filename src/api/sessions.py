"""
Live passenger sessions held by the gateway, one per followed ride.

Each WebSocket listening on a ride gets its own queue of session events.
A session is released once its ride is over and no socket is watching it;
closing the registry disposes every session, which tears down every store
subscription they opened.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from src.domain.events import RideDeclined, SessionEvent
from src.domain.exceptions import RideError, RideNotFoundError
from src.services.passenger_session import PassengerSessionController
from src.services.session import SessionContext

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self):
        self._sessions: dict[str, PassengerSessionController] = {}
        self._streams: dict[str, list[asyncio.Queue]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._releases: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, ride_id: str) -> Optional[PassengerSessionController]:
        return self._sessions.get(ride_id)

    def new_session(self, context: SessionContext) -> PassengerSessionController:
        return PassengerSessionController(context)

    def register(self, controller: PassengerSessionController) -> None:
        ride_id = controller.ride_id
        if ride_id is None:
            raise ValueError("Session has no ride to register under")
        controller.add_listener(lambda event: self._on_event(ride_id, event))
        self._sessions[ride_id] = controller

    async def follow(self, context: SessionContext, ride_id: str) -> PassengerSessionController:
        """Return the live session for *ride_id*, attaching a new one if needed."""
        async with self._locks.setdefault(ride_id, asyncio.Lock()):
            controller = self._sessions.get(ride_id)
            if controller is None:
                ride = await context.rides.get_by_id(ride_id)
                if ride is None or ride.passenger.passenger_id != context.passenger_id:
                    raise RideNotFoundError(f"Ride {ride_id} not found", {"ride_id": ride_id})
                controller = self.new_session(context)
                try:
                    await controller.attach(ride_id)
                except RideError:
                    await controller.dispose()
                    raise
                self.register(controller)
            elif controller.context.passenger_id != context.passenger_id:
                raise RideNotFoundError(f"Ride {ride_id} not found", {"ride_id": ride_id})
            return controller

    def stream(self, ride_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._streams.setdefault(ride_id, []).append(queue)
        return queue

    def unstream(self, ride_id: str, queue: asyncio.Queue) -> None:
        queues = self._streams.get(ride_id, [])
        if queue in queues:
            queues.remove(queue)

    def _on_event(self, ride_id: str, event: SessionEvent) -> None:
        for queue in self._streams.get(ride_id, []):
            queue.put_nowait(event)
        if isinstance(event, RideDeclined):
            # The declined snapshot arrives on the change feed's task, after
            # any HTTP call that caused it has already returned.
            task = asyncio.get_running_loop().create_task(self.release_if_idle(ride_id))
            self._releases.add(task)
            task.add_done_callback(self._releases.discard)

    async def release_if_idle(self, ride_id: str) -> None:
        """Drop a session whose trip is over and that nobody is watching."""
        controller = self._sessions.get(ride_id)
        if controller is None or self._streams.get(ride_id):
            return
        if controller.is_finished:
            await self.close(ride_id)

    async def close(self, ride_id: str) -> None:
        controller = self._sessions.pop(ride_id, None)
        self._streams.pop(ride_id, None)
        self._locks.pop(ride_id, None)
        if controller is not None:
            await controller.dispose()
            logger.debug("Session for ride %s released", ride_id)

    async def close_all(self) -> None:
        for task in list(self._releases):
            task.cancel()
        for ride_id in list(self._sessions):
            try:
                await self.close(ride_id)
            except Exception:
                logger.exception("Closing session for ride %s failed", ride_id)
        logger.info("All passenger sessions closed")
