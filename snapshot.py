"""Plain-JSON snapshot of one user's world under three fixed keys."""
from datetime import datetime
from typing import Any, Dict

from sqlmodel import select

from db import get_session
from errors import NotFoundError
from messaging import MessageSink, ride_conversation
from models import ChatMessage, Ride, User, as_utc

RIDES_KEY = "uniride_rides"
USER_KEY = "uniride_user"
CHATS_KEY = "uniride_chats"


def _dump(obj) -> Dict[str, Any]:
    return obj.model_dump(mode="json")


def export_snapshot(user_id: int) -> Dict[str, Any]:
    with get_session() as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"user {user_id} not found")
        rides = session.exec(select(Ride).order_by(Ride.id)).all()
    chats = MessageSink().conversations(ride_conversation(r.id) for r in rides)
    return {
        RIDES_KEY: [_dump(r) for r in rides],
        USER_KEY: _dump(user),
        CHATS_KEY: {key: [_dump(m) for m in msgs] for key, msgs in chats.items()},
    }


def _parse_times(data: dict, *fields):
    out = dict(data)
    for f in fields:
        if isinstance(out.get(f), str):
            out[f] = as_utc(datetime.fromisoformat(out[f]))
    return out


def load_snapshot(data: Dict[str, Any]):
    """Upsert a snapshot produced by export_snapshot. Rows are matched by id."""
    with get_session() as session:
        if data.get(USER_KEY):
            session.merge(User.model_validate(data[USER_KEY]))
        # rides reference users by id, so the user row has to exist first
        session.flush()
        for raw in data.get(RIDES_KEY, []):
            incoming = Ride.model_validate(_parse_times(raw, "created_at", "booked_at"))
            existing = session.get(Ride, incoming.id) if incoming.id is not None else None
            if existing is None:
                incoming.version = None
                session.add(incoming)
                continue
            # the mapper owns the version counter, so copy fields rather than merge
            for field, value in incoming.model_dump(exclude={"id", "version"}).items():
                setattr(existing, field, value)
        for key, msgs in data.get(CHATS_KEY, {}).items():
            for raw in msgs:
                msg = ChatMessage.model_validate(_parse_times(raw, "timestamp"))
                msg.conversation_key = key
                session.merge(msg)
        session.commit()
