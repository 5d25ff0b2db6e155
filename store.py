"""Ride storage with per-ride serialized, all-or-nothing updates."""
import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import select

from db import get_session, ride_lock
from errors import ConcurrentUpdateError, NotFoundError
from models import Ride, RideStatus, User, PendingBooking

logger = logging.getLogger(__name__)


class RideTransaction:
    """Session-scoped view handed out by RideStore.update.

    Everything loaded through it is written back on commit, or discarded
    together when the block raises.
    """

    def __init__(self, session, ride: Ride):
        self.session = session
        self.ride = ride

    def user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError(f"user {user_id} not found")
        return user

    def prior_completions(self, passenger_id: int, exclude_ride_id: int) -> List[Ride]:
        stmt = select(Ride).where(
            Ride.status == RideStatus.COMPLETED,
            Ride.passenger_id == passenger_id,
            Ride.id != exclude_ride_id,
        )
        return self.session.exec(stmt).all()

    def pending_for(self, user_id: int) -> Optional[PendingBooking]:
        stmt = select(PendingBooking).where(
            PendingBooking.ride_id == self.ride.id,
            PendingBooking.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def add_pending(self, user_id: int) -> PendingBooking:
        pending = self.pending_for(user_id)
        if pending is None:
            pending = PendingBooking(ride_id=self.ride.id, user_id=user_id)
            self.session.add(pending)
        return pending

    def drop_pending(self, user_id: int):
        pending = self.pending_for(user_id)
        if pending is not None:
            self.session.delete(pending)


class RideStore:
    def get(self, ride_id: int) -> Ride:
        with get_session() as session:
            ride = session.get(Ride, ride_id)
            if not ride:
                raise NotFoundError(f"ride {ride_id} not found")
            return ride

    def put(self, ride: Ride) -> Ride:
        with get_session() as session:
            session.add(ride)
            try:
                session.commit()
            except StaleDataError:
                session.rollback()
                logger.warning("ride %s changed under a direct write", ride.id)
                raise ConcurrentUpdateError(f"ride {ride.id} was modified concurrently")
            session.refresh(ride)
            return ride

    def get_user(self, user_id: int) -> User:
        with get_session() as session:
            user = session.get(User, user_id)
            if not user:
                raise NotFoundError(f"user {user_id} not found")
            return user

    def put_user(self, user: User) -> User:
        with get_session() as session:
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def find(self, statuses=None, ride_type=None, involving=None) -> List[Ride]:
        with get_session() as session:
            stmt = select(Ride)
            if statuses:
                stmt = stmt.where(Ride.status.in_(statuses))
            if ride_type is not None:
                stmt = stmt.where(Ride.ride_type == ride_type)
            if involving is not None:
                stmt = stmt.where((Ride.host_id == involving) | (Ride.passenger_id == involving))
            stmt = stmt.order_by(Ride.created_at.desc(), Ride.id.desc())
            return session.exec(stmt).all()

    @contextmanager
    def update(self, ride_id: int):
        """Serialize a read-modify-write of one ride and the users it touches.

        The per-ride lock keeps transitions on the same ride from
        interleaving. Writers that bypass it still bump the version column,
        so the UPDATE here matches no row and the block fails with
        ConcurrentUpdateError instead of overwriting them.
        """
        lock = ride_lock(ride_id)
        with lock:
            with get_session() as session:
                ride = session.get(Ride, ride_id)
                if not ride:
                    raise NotFoundError(f"ride {ride_id} not found")
                try:
                    yield RideTransaction(session, ride)
                    session.commit()
                except StaleDataError:
                    session.rollback()
                    logger.warning("ride %s was written outside its lock mid-update", ride_id)
                    raise ConcurrentUpdateError(f"ride {ride_id} was modified concurrently")
                except Exception:
                    session.rollback()
                    raise
                session.refresh(ride)
