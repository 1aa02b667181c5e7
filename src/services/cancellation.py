"""
Passenger cancellation
======================

* ``HoldToConfirm`` -- press-and-hold gesture.  Pressing starts a countdown;
  releasing before it runs out aborts with no side effect; reaching the end
  runs the commit callback exactly once.
* ``resolve_reason`` -- which reason to record, and whether one is required.
* ``cancellation_fields`` -- the single update written on commit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from src.config import settings
from src.domain.entities import utcnow
from src.domain.enums import (
    ASSIGNED_CANCELLATION_REASONS,
    CancellationReason,
    CancellingParty,
    RideStatus,
)
from src.domain.exceptions import CancellationReasonRequiredError, ValidationError

logger = logging.getLogger(__name__)


class HoldToConfirm:
    def __init__(
        self,
        on_commit: Callable[[], Awaitable[None]],
        duration: float = settings.cancel_hold_seconds,
        tick: float = settings.cancel_hold_tick_seconds,
        on_progress: Optional[Callable[[float], None]] = None,
    ):
        self.on_commit = on_commit
        self.duration = duration
        self.tick = tick
        self.on_progress = on_progress
        self.progress = 0.0
        self._task: Optional[asyncio.Task] = None
        self._expired = False

    @property
    def holding(self) -> bool:
        return self._task is not None and not self._task.done() and not self._expired

    def press(self) -> None:
        """Start (or restart) the countdown."""
        if self._expired:
            return
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._set_progress(0.0)
        self._task = asyncio.create_task(self._countdown())

    def release(self) -> bool:
        """Abort the countdown.  Returns True if a hold was interrupted."""
        if self._expired or self._task is None or self._task.done():
            return False
        self._task.cancel()
        self._set_progress(0.0)
        logger.debug("Cancel hold released early")
        return True

    def rearm(self) -> None:
        """Allow another hold after a commit that did not go through."""
        self._expired = False
        self._set_progress(0.0)

    async def wait(self) -> None:
        """Wait for the current countdown (and commit, if reached) to finish."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _countdown(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        while True:
            elapsed = loop.time() - started
            self._set_progress(min(1.0, elapsed / self.duration) if self.duration else 1.0)
            if elapsed >= self.duration:
                break
            await asyncio.sleep(min(self.tick, self.duration - elapsed))
        # Past this point a release no longer aborts.
        self._expired = True
        await self.on_commit()

    def _set_progress(self, value: float) -> None:
        self.progress = value
        if self.on_progress is not None:
            self.on_progress(value)


def resolve_reason(
    driver_assigned: bool,
    reason: Optional[CancellationReason],
    require_reason: bool = settings.require_reason_after_assignment,
) -> CancellationReason:
    if not driver_assigned:
        return reason or CancellationReason.USER_CANCELLED
    if reason is None:
        if require_reason:
            raise CancellationReasonRequiredError(
                "Choose a reason before cancelling a ride with a driver on the way"
            )
        return CancellationReason.USER_CANCELLED
    if reason not in ASSIGNED_CANCELLATION_REASONS:
        raise ValidationError(f"{reason.value} is not offered once a driver is assigned")
    return reason


def cancellation_fields(reason: CancellationReason) -> dict:
    return {
        "status": RideStatus.DECLINED.value,
        "cancelled_at": utcnow().isoformat(),
        "cancelled_by": CancellingParty.CUSTOMER.value,
        "cancellation_reason": reason.value,
    }
