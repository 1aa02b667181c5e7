"""
Passenger Session Controller
============================

Owns one passenger's trip from request to settlement:

1. Quote the trip and create the ride request (status ``waiting``).
2. Subscribe to the ride record and fold each snapshot through the
   lifecycle reducer.
3. When a driver is found, fetch their details and follow their position.
4. Offer hold-to-cancel until the trip ends; on completion collect a rating
   exactly once.

Concurrency
-----------
Everything runs on one event loop.  Store callbacks may interleave with
passenger actions at every ``await``, so guards (``_cancel_committed``,
``_rating_submitted``) are set *before* the write they protect.

Nothing here is transactional against the matching actor: if a cancellation
and a driver assignment land at the same instant, the last write wins.

``dispose`` must be called when the owner goes away; it closes every
subscription this session opened.

If the ride's live feed drops, the session shows an alert and keeps its
last state until ``reconnect`` re-subscribes.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Callable, Iterator, Optional

from src.config import settings
from src.domain.contact import DriverContact
from src.domain.entities import (
    DriverAssignment,
    DriverDetails,
    DriverLocationSample,
    Location,
    PaymentMethod,
    Place,
    Rating,
    RideRequest,
)
from src.domain.enums import (
    RIDE_TRANSITIONS,
    CancellationReason,
    RideClass,
    RideStatus,
    TripPhase,
)
from src.domain.events import (
    Destination,
    DriverAssigned,
    DriverDetailsLoaded,
    DriverLocationUpdated,
    Navigate,
    RideDeclined,
    SessionEvent,
    SettlementRequested,
    ShowAlert,
)
from src.domain.exceptions import (
    CancellationReasonRequiredError,
    DocumentExistsError,
    InvalidStateTransition,
    NotAuthenticatedError,
    RatingRejectedError,
    RideError,
    StateError,
    TransientError,
)
from src.domain.lifecycle import RideLifecycleMachine
from src.domain.pricing import FareQuote
from src.domain.rating import RatingDraft
from src.infrastructure.geocoding import RouteInfo
from src.infrastructure.store import Subscription

from .cancellation import HoldToConfirm, cancellation_fields, resolve_reason
from .driver_location import DriverLocationFeed
from .ratings import RatingService
from .session import SessionContext

logger = logging.getLogger(__name__)

EventListener = Callable[[SessionEvent], None]


def alert_for(exc: RideError) -> ShowAlert:
    if isinstance(exc, TransientError):
        return ShowAlert("Connection problem", f"{exc.message}. Please try again.")
    if isinstance(exc, CancellationReasonRequiredError):
        return ShowAlert("Cancel ride", "Please choose a reason before cancelling.")
    if isinstance(exc, RatingRejectedError):
        return ShowAlert("Rating", "Please rate your driver before submitting.")
    return ShowAlert("Error", exc.message)


class PassengerSessionController:
    def __init__(
        self,
        context: SessionContext,
        listener: Optional[EventListener] = None,
        hold_seconds: float = settings.cancel_hold_seconds,
        hold_tick_seconds: float = settings.cancel_hold_tick_seconds,
        require_reason_after_assignment: bool = settings.require_reason_after_assignment,
    ):
        self.context = context
        self._listeners: list[EventListener] = [listener] if listener else []
        self.require_reason_after_assignment = require_reason_after_assignment

        self.ride_id: Optional[str] = None
        self.machine: Optional[RideLifecycleMachine] = None
        self.driver_details: Optional[DriverDetails] = None
        self.cancel_reason: Optional[CancellationReason] = None
        self.rating = RatingDraft()
        self.cancel_hold = HoldToConfirm(
            self._commit_from_hold, duration=hold_seconds, tick=hold_tick_seconds
        )

        self._ride_subscription: Optional[Subscription] = None
        self._driver_feed: Optional[DriverLocationFeed] = None
        self._cancel_committed = False
        self._rating_submitted = False
        self._disposed = False
        self._feed_lost = False

    # ── Observers ─────────────────────────────────────────────────

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    @contextlib.contextmanager
    def _user_action(self, name: str) -> Iterator[None]:
        """Turn a recoverable failure into an alert, then re-raise it."""
        try:
            yield
        except NotAuthenticatedError:
            raise
        except RideError as exc:
            logger.warning("%s failed: %s", name, exc.message)
            self._emit(alert_for(exc))
            raise

    # ── Read-only state ───────────────────────────────────────────

    @property
    def phase(self) -> Optional[TripPhase]:
        return self.machine.phase if self.machine else None

    @property
    def ride(self) -> Optional[RideRequest]:
        return self.machine.ride if self.machine else None

    @property
    def driver(self) -> Optional[DriverAssignment]:
        return self.machine.state.driver if self.machine else None

    @property
    def contact(self) -> DriverContact:
        return DriverContact.for_driver(self.driver)

    @property
    def driver_location(self) -> Optional[DriverLocationSample]:
        return self._driver_feed.latest if self._driver_feed else None

    @property
    def is_finished(self) -> bool:
        """True once the trip is over or this session has cancelled it."""
        return self._cancel_committed or (self.phase is not None and self.phase.is_terminal)

    @property
    def feed_lost(self) -> bool:
        return self._feed_lost

    @property
    def can_cancel(self) -> bool:
        return (
            self.machine is not None
            and self.phase is not None
            and not self.phase.is_terminal
            and not self._cancel_committed
        )

    # ── Before the request ────────────────────────────────────────

    def _require_passenger(self) -> str:
        try:
            return self.context.require_passenger()
        except NotAuthenticatedError:
            self._emit(Navigate(Destination.AUTHENTICATION))
            raise

    async def quote(
        self, pickup: Location, destination: Location
    ) -> tuple[RouteInfo, list[FareQuote]]:
        with self._user_action("quote"):
            route = await self.context.geocoder.route(pickup, destination)
            return route, self.context.fares.quote_all(route.distance_km, route.duration_min)

    async def payment_methods(self) -> tuple[list[PaymentMethod], Optional[PaymentMethod]]:
        """The passenger's methods and the one preselected for them."""
        passenger_id = self._require_passenger()
        with self._user_action("payment methods"):
            return await self._load_payment_methods(passenger_id)

    async def _load_payment_methods(
        self, passenger_id: str
    ) -> tuple[list[PaymentMethod], Optional[PaymentMethod]]:
        methods = await self.context.payment_methods.list_for_passenger(passenger_id)
        default = next((m for m in methods if m.is_default), methods[0] if methods else None)
        return methods, default

    async def _fill_address(self, place: Place) -> Place:
        if place.address:
            return place
        try:
            address = await self.context.geocoder.reverse_geocode(place.location)
        except TransientError as exc:
            logger.warning("Reverse geocoding failed: %s", exc.message)
            return place
        return Place(place.location, address)

    async def request_ride(
        self,
        pickup: Place,
        destination: Place,
        ride_class: RideClass,
        route: Optional[RouteInfo] = None,
        payment_method: Optional[str] = None,
    ) -> RideRequest:
        passenger_id = self._require_passenger()
        if self.ride_id is not None:
            raise StateError(f"Session already follows ride {self.ride_id}")

        with self._user_action("request ride"):
            if route is None:
                route = await self.context.geocoder.route(pickup.location, destination.location)
            pickup = await self._fill_address(pickup)
            destination = await self._fill_address(destination)
            profile = await self.context.customers.get_profile(passenger_id)
            if payment_method is None:
                _, default = await self._load_payment_methods(passenger_id)
                payment_method = default.id if default else ""

            ride = RideRequest(
                passenger=profile,
                pickup=pickup,
                destination=destination,
                ride_class=ride_class,
                fare=self.context.fares.fare(route.distance_km, ride_class),
                distance_km=route.distance_km,
                duration_min=route.duration_min,
                payment_method=payment_method,
                status=RideStatus.WAITING,
            )
            ride = await self.context.rides.create(ride)

        logger.info(
            "Ride %s requested by %s (%s, %.1f km, fare %s)",
            ride.id, passenger_id, ride_class.value, ride.distance_km, ride.fare,
        )

        try:
            await self.context.rides.create_driver_copy(ride)
        except TransientError:
            # Independent write; the ride request itself stands.
            logger.exception("Driver copy of ride %s was not written", ride.id)

        await self.attach(ride.id)
        return ride

    # ── Following the ride ────────────────────────────────────────

    async def attach(self, ride_id: str) -> None:
        """Start following an existing ride request."""
        if self._disposed:
            raise StateError("Session is disposed")
        if self._ride_subscription is not None:
            raise StateError(f"Session already follows ride {self.ride_id}")
        self.ride_id = ride_id
        self.machine = RideLifecycleMachine(ride_id)
        with self._user_action("follow ride"):
            self._ride_subscription = await self._subscribe_ride(ride_id)

    async def _subscribe_ride(self, ride_id: str) -> Subscription:
        return await self.context.rides.subscribe(
            ride_id, self._on_ride_snapshot, on_lost=self._on_feed_lost
        )

    async def _on_feed_lost(self, exc: Exception) -> None:
        if self._disposed:
            return
        self._feed_lost = True
        logger.warning("Live updates for ride %s lost: %s", self.ride_id, exc)
        if isinstance(exc, RideError):
            self._emit(alert_for(exc))

    async def reconnect(self) -> bool:
        """Re-open the ride subscription after its live feed dropped."""
        if self._disposed or not self._feed_lost or self.ride_id is None:
            return False
        previous, self._ride_subscription = self._ride_subscription, None
        if previous is not None:
            await previous.unsubscribe()
        with self._user_action("reconnect"):
            self._ride_subscription = await self._subscribe_ride(self.ride_id)
        self._feed_lost = False
        logger.info("Live updates for ride %s resumed", self.ride_id)
        return True

    async def _on_ride_snapshot(self, data) -> None:
        if self._disposed or self.machine is None:
            return
        for event in self.machine.apply(data):
            self._emit(event)
            if isinstance(event, DriverAssigned):
                await self._on_driver_assigned(event.driver)
            elif isinstance(event, SettlementRequested):
                self.cancel_hold.release()
                await self._stop_driver_feed()
            elif isinstance(event, RideDeclined):
                await self._on_declined()

    async def _on_driver_assigned(self, driver: DriverAssignment) -> None:
        try:
            self.driver_details = await self.context.drivers.get_details(driver.driver_id)
        except RideError as exc:
            logger.warning("Driver details unavailable for %s: %s", driver.driver_id, exc.message)
            self.driver_details = None
        if self.driver_details is not None:
            self._emit(DriverDetailsLoaded(self.driver_details))

        pickup = self.ride.pickup.location if self.ride else None
        self._driver_feed = DriverLocationFeed(self.context.drivers, driver.driver_id, pickup)
        try:
            await self._driver_feed.start(self._on_driver_sample)
        except TransientError as exc:
            logger.warning("Driver location feed unavailable: %s", exc.message)
            self._emit(alert_for(exc))

    async def _on_driver_sample(
        self, sample: DriverLocationSample, distance_to_pickup: Optional[float]
    ) -> None:
        if self._disposed:
            return
        self._emit(DriverLocationUpdated(sample, distance_to_pickup))

    async def _on_declined(self) -> None:
        self.cancel_hold.release()
        await self._stop_driver_feed()
        if not self._cancel_committed:
            # Cancelled elsewhere (driver side); leave the trip screens.
            logger.info("Ride %s was declined by another party", self.ride_id)
            self._emit(Navigate(Destination.HOME))

    async def _stop_driver_feed(self) -> None:
        if self._driver_feed is not None:
            await self._driver_feed.stop()

    # ── Cancellation ──────────────────────────────────────────────

    def choose_cancellation_reason(self, reason: Optional[CancellationReason]) -> None:
        self.cancel_reason = reason

    def press_cancel(self) -> None:
        if self.can_cancel:
            self.cancel_hold.press()

    def release_cancel(self) -> bool:
        return self.cancel_hold.release()

    async def _commit_from_hold(self) -> None:
        try:
            await self.cancel(self.cancel_reason)
        except RideError as exc:
            # cancel() has already raised the alert; the hold just ends here.
            logger.debug("Hold-to-cancel commit did not go through: %s", exc.message)
            self.cancel_hold.rearm()

    async def cancel(self, reason: Optional[CancellationReason] = None) -> bool:
        """Write the cancellation.  Returns False if one was already written."""
        if self._cancel_committed:
            logger.info("Duplicate cancellation of ride %s ignored", self.ride_id)
            return False

        with self._user_action("cancel ride"):
            ride = self.ride
            if self.machine is None or ride is None:
                raise StateError("No ride to cancel")
            if self.machine.state.is_terminal or RideStatus.DECLINED not in RIDE_TRANSITIONS[ride.status]:
                raise InvalidStateTransition(f"Ride {ride.id} can no longer be cancelled")

            driver_assigned = self.driver is not None
            resolved = resolve_reason(
                driver_assigned,
                reason or self.cancel_reason,
                self.require_reason_after_assignment,
            )

            self._cancel_committed = True
            try:
                await self.context.rides.update_fields(ride.id, cancellation_fields(resolved))
            except RideError:
                self._cancel_committed = False
                raise

        logger.info("Ride %s cancelled by passenger (%s)", ride.id, resolved.value)
        self.cancel_hold.release()
        await self._stop_driver_feed()
        self._emit(Navigate(Destination.ACTIVITY if driver_assigned else Destination.HOME))
        return True

    # ── Rating / settlement ───────────────────────────────────────

    def set_rating(self, score: int) -> None:
        with self._user_action("rate"):
            self.rating.set_score(score)

    def toggle_comment(self, comment: str) -> None:
        self.rating.toggle(comment)

    async def submit_rating(
        self,
        score: Optional[int] = None,
        comments: Optional[list[str]] = None,
        other_text: str = "",
    ) -> Optional[Rating]:
        if score is not None:
            self.set_rating(score)
        if comments is not None:
            self.rating.comments = list(comments)
        if other_text:
            self.rating.other_text = other_text

        with self._user_action("submit rating"):
            if not self.rating.can_submit:
                raise RatingRejectedError("Choose a rating between 1 and 5")
            if self._rating_submitted:
                raise StateError("This ride has already been rated")
            ride = self.ride
            if ride is None or ride.status is not RideStatus.COMPLETED:
                raise RatingRejectedError("Only completed rides can be rated")
            passenger_id = self._require_passenger()

            self._rating_submitted = True
            service = RatingService(self.context.ratings, self.context.drivers)
            try:
                rating = await service.submit(ride, passenger_id, self.rating)
            except DocumentExistsError:
                logger.info("Ride %s was already rated by %s", ride.id, passenger_id)
                self._emit(Navigate(Destination.ACTIVITY))
                return None
            except TransientError:
                self._rating_submitted = False
                raise

        self._emit(ShowAlert("Thank you", "Your rating has been saved."))
        self._emit(Navigate(Destination.ACTIVITY))
        return rating

    # ── Teardown ──────────────────────────────────────────────────

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.cancel_hold.release()
        await self._stop_driver_feed()
        if self._ride_subscription is not None:
            await self._ride_subscription.unsubscribe()
        logger.debug("Session for ride %s disposed", self.ride_id)
