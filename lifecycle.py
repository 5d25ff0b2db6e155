"""Ride lifecycle: create, book, confirm, cancel and PIN-verified completion.

Every state change goes through RideStore.update, so a transition either
lands completely (ride, seats, both users' counters) or not at all.
Messages are written inside the same transaction after the state checks,
so a failed transition leaves no trace in the conversation. The ride lock
keeps the log in commit order.
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from errors import InvalidStateError, PermissionDenied, ValidationError, VerificationError
from locations import LocationResolver
from messaging import MessageSink, ride_conversation, schedule_later
from models import Ride, RideStatus, RideType, User, as_utc, utcnow
from pricing import compute_price
from routing import RouteEstimator
from settings import ACK_DELAY, CANCELLATION_PENALTY, COMPLETION_COOLDOWN, COMPLETION_REWARD
from store import RideStore
import trust

logger = logging.getLogger(__name__)

DEFAULT_SEATS = {RideType.OFFER: 3, RideType.REQUEST: 1}
DEFAULT_DESCRIPTION = {
    RideType.OFFER: "I have space in my car.",
    RideType.REQUEST: "Need a ride to this location.",
}


def generate_code(rng: random.Random) -> str:
    """4-digit PIN; only unique per ride, never checked across rides."""
    return "%04d" % rng.randint(1000, 9999)


@dataclass
class CompletionResult:
    ride: Ride
    points_awarded: int
    collusion_detected: bool


class RideEngine:
    def __init__(
        self,
        store: Optional[RideStore] = None,
        sink: Optional[MessageSink] = None,
        resolver: Optional[LocationResolver] = None,
        estimator: Optional[RouteEstimator] = None,
        scheduler: Callable = schedule_later,
        ack_delay: float = ACK_DELAY,
        completion_cooldown: float = COMPLETION_COOLDOWN,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store or RideStore()
        self.sink = sink or MessageSink()
        self.resolver = resolver or LocationResolver()
        self.estimator = estimator or RouteEstimator()
        self.scheduler = scheduler
        self.ack_delay = ack_delay
        self.completion_cooldown = completion_cooldown
        self.rng = rng or random.SystemRandom()
        self.clock = clock

    # ------------------------------------------------------------------ create

    def create_ride(self, host_id: int, ride_type, from_name: str, to_name: str, time_label: str,
                    description: Optional[str] = None) -> Ride:
        fields = (("from", from_name), ("to", to_name), ("time", time_label))
        wrong = [label for label, value in fields if value is not None and not isinstance(value, str)]
        if wrong or (description is not None and not isinstance(description, str)):
            raise ValidationError(f"expected text for {', '.join(wrong or ['description'])}")
        missing = [label for label, value in fields if not value or not value.strip()]
        if missing:
            raise ValidationError(f"missing {', '.join(missing)}")
        try:
            ride_type = ride_type if isinstance(ride_type, RideType) else RideType(str(ride_type).upper())
        except ValueError:
            raise ValidationError(f"unknown ride type {ride_type!r}")
        host = self.store.get_user(host_id)

        # upstream lookups happen before anything is written
        origin = self.resolver.resolve(from_name, host.location)
        dest = self.resolver.resolve(to_name, host.location)
        route = self.estimator.estimate(origin, dest)

        ride = Ride(
            ride_type=ride_type,
            host_id=host.id,
            from_name=origin.name,
            from_address=origin.address,
            from_lat=origin.lat,
            from_lng=origin.lng,
            to_name=dest.name,
            to_address=dest.address,
            to_lat=dest.lat,
            to_lng=dest.lng,
            time_label=time_label.strip(),
            description=description or DEFAULT_DESCRIPTION[ride_type],
            price=compute_price(route.distance_miles),
            seats=DEFAULT_SEATS[ride_type],
            status=RideStatus.OPEN,
            trip_distance=route.distance_miles,
            trip_duration=route.duration_label,
            traffic_level=route.traffic_level,
            route_geometry=route.geometry,
        )
        ride = self.store.put(ride)
        logger.info("ride %s (%s) created by user %s", ride.id, ride.ride_type.value, host.id)
        return ride

    # ----------------------------------------------------------------- booking

    def initiate_booking(self, ride_id: int, user_id: int) -> bool:
        """Record intent to book and open the negotiation.

        Returns False without doing anything when the user already holds
        the booking of a ride that is still live.
        """
        with self.store.update(ride_id) as txn:
            ride = txn.ride
            if ride.is_terminal:
                raise InvalidStateError(f"ride is {ride.status.value}, not open for booking")
            if ride.passenger_id == user_id:
                return False
            if ride.host_id == user_id:
                raise PermissionDenied("you cannot book your own ride")
            if ride.status != RideStatus.OPEN:
                raise InvalidStateError(f"ride is {ride.status.value}, not open for booking")
            user = txn.user(user_id)
            host = txn.user(ride.host_id)
            txn.add_pending(user_id)

            if ride.ride_type == RideType.OFFER:
                intent = f"Hi {host.first_name}! I'd like to book a seat on your ride to {ride.to_name}."
            else:
                intent = f"Hi {host.first_name}! I can give you a ride to {ride.to_name} for ${ride.price:g}."
            self.sink.append(ride_conversation(ride_id), user.id, intent, session=txn.session)
        logger.info("user %s started booking ride %s", user_id, ride_id)

        # the reply takes the ride lock itself, so it is only scheduled once this commit is done
        self.scheduler(self.ack_delay, lambda: self._acknowledge(ride_id))
        return True

    def _acknowledge(self, ride_id: int):
        """Delayed reply from the host; serialized with other transitions on the ride."""
        with self.store.update(ride_id) as txn:
            ride = txn.ride
            if ride.is_terminal:
                logger.info("ride %s is %s, dropping host reply", ride_id, ride.status.value)
                return
            if ride.ride_type == RideType.OFFER:
                text = "Hey! Yes, I have a seat open. Please confirm the booking if you want to proceed."
            else:
                text = "That works for me! Please confirm if you are sure you want to drive me."
            self.sink.append(ride_conversation(ride_id), ride.host_id, text, session=txn.session)

    def finalize_booking(self, ride_id: int, user_id: int) -> Ride:
        with self.store.update(ride_id) as txn:
            ride = txn.ride
            if txn.pending_for(user_id) is None:
                raise InvalidStateError("no pending booking for this user")
            if ride.status != RideStatus.OPEN:
                raise InvalidStateError(f"ride is {ride.status.value}, not open for booking")
            if ride.ride_type == RideType.OFFER and ride.seats <= 0:
                raise InvalidStateError("no seats left")
            txn.user(user_id)

            ride.attach_booking(user_id, generate_code(self.rng), as_utc(self.clock()))
            if ride.ride_type == RideType.OFFER:
                ride.seats -= 1
                ride.status = RideStatus.BOOKED if ride.seats == 0 else RideStatus.OPEN
            else:
                ride.status = RideStatus.BOOKED
            txn.drop_pending(user_id)

            key = ride_conversation(ride_id)
            self.sink.append(key, user_id, "I've confirmed the booking!", session=txn.session)
            self.sink.system(key, "CONFIRMED. Passenger: Check your Ride Card for your PIN. Driver will verify at drop-off.",
                             session=txn.session)
        logger.info("ride %s booked by user %s, %s seat(s) left, status %s",
                    ride_id, user_id, ride.seats, ride.status.value)
        return ride

    # ------------------------------------------------------------------ cancel

    def cancel(self, ride_id: int, user_id: int) -> Ride:
        with self.store.update(ride_id) as txn:
            ride = txn.ride
            if ride.is_terminal:
                raise InvalidStateError(f"ride is already {ride.status.value}")
            is_host = ride.host_id == user_id
            if not is_host and ride.passenger_id != user_id:
                raise PermissionDenied("only the host or the booked passenger can cancel")
            user = txn.user(user_id)

            if is_host:
                ride.status = RideStatus.CANCELLED
                text = f"Ride cancelled by host {user.name} (-{CANCELLATION_PENALTY} Trust Score)"
            else:
                if ride.ride_type == RideType.OFFER:
                    ride.seats += 1
                ride.status = RideStatus.OPEN
                ride.clear_booking()
                txn.drop_pending(user_id)
                text = f"Booking cancelled by {user.name} (-{CANCELLATION_PENALTY} Trust Score)"
            trust.penalize(user)
            self.sink.system(ride_conversation(ride_id), text, session=txn.session)
        logger.info("ride %s cancelled by %s %s", ride_id, "host" if is_host else "passenger", user_id)
        return ride

    # ---------------------------------------------------------------- complete

    def complete(self, ride_id: int, user_id: int, code: str) -> CompletionResult:
        with self.store.update(ride_id) as txn:
            ride = txn.ride
            if ride.is_terminal:
                raise InvalidStateError(f"ride is already {ride.status.value}")
            if not ride.has_booking:
                raise InvalidStateError("ride has no booking to complete")
            if ride.driver_id != user_id:
                raise PermissionDenied("only the driver can complete the ride")
            remaining = self.cooldown_remaining(ride)
            if remaining > 0:
                raise InvalidStateError(f"completion locked for another {remaining:.0f}s")
            if str(code).strip() != ride.verification_code:
                logger.info("ride %s: wrong PIN from user %s", ride_id, user_id)
                raise VerificationError("Incorrect PIN. Ask the passenger for the correct 4-digit code.")

            collusion = bool(txn.prior_completions(ride.passenger_id, ride.id))
            points = 0 if collusion else COMPLETION_REWARD
            driver = txn.user(user_id)
            trust.reward(driver, points)
            ride.status = RideStatus.COMPLETED

            if collusion:
                text = "Ride verified. No points awarded: frequency limit reached."
            else:
                text = f"Ride verified! +{points} Trust Score."
            self.sink.system(ride_conversation(ride_id), text, session=txn.session)
        logger.info("ride %s completed by user %s, %s point(s)%s",
                    ride_id, user_id, points, " (frequency cap)" if collusion else "")
        return CompletionResult(ride=ride, points_awarded=points, collusion_detected=collusion)

    def cooldown_remaining(self, ride: Ride) -> float:
        if ride.booked_at is None:
            return 0.0
        # stored values come back naive, the clock is aware; compare both as UTC
        unlock = as_utc(ride.booked_at) + timedelta(seconds=self.completion_cooldown)
        return max(0.0, (unlock - as_utc(self.clock())).total_seconds())

    # ------------------------------------------------------------------- reads

    def get_ride(self, ride_id: int) -> Ride:
        return self.store.get(ride_id)

    def get_user(self, user_id: int) -> User:
        return self.store.get_user(user_id)

    def list_rides(self, viewer_id: Optional[int] = None, filter_by: str = "ALL") -> List[Ride]:
        filter_by = (filter_by or "ALL").upper()
        if filter_by == "MY_RIDES":
            if viewer_id is None:
                raise ValidationError("MY_RIDES needs a viewer")
            return self.store.find(involving=viewer_id)
        active = [RideStatus.OPEN, RideStatus.BOOKED]
        if filter_by == "ALL":
            return self.store.find(statuses=active)
        try:
            ride_type = RideType(filter_by)
        except ValueError:
            raise ValidationError(f"unknown filter {filter_by!r}")
        return self.store.find(statuses=active, ride_type=ride_type)
