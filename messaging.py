"""Append-only per-conversation message log the ride engine writes into."""
import logging
import threading
from typing import Dict, Iterable, List, Optional

from sqlmodel import select

from db import get_session, get_lock
from models import ChatMessage

logger = logging.getLogger(__name__)

SYSTEM_SENDER = "system"


def ride_conversation(ride_id: int) -> str:
    return f"ride_{ride_id}"


def schedule_later(delay: float, fn):
    """Run fn on a daemon timer thread after `delay` seconds."""
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer


def run_now(delay: float, fn):
    fn()


class MessageSink:
    def append(self, conversation_key: str, sender_id, text: str, is_system: bool = False,
               session=None) -> ChatMessage:
        """Append one message.

        Passing the session of an open ride transaction makes the message
        part of that transition. It commits or rolls back with the ride,
        and the ride lock the transaction holds fixes its order.
        """
        msg = ChatMessage(
            conversation_key=conversation_key,
            sender_id=str(sender_id),
            text=text,
            is_system=is_system,
        )
        if session is not None:
            session.add(msg)
            session.flush()
            return msg
        # one writer per conversation keeps ids in append order
        with get_lock(f"chat:{conversation_key}"):
            with get_session() as session:
                session.add(msg)
                session.commit()
                session.refresh(msg)
        logger.debug("appended message %s to %s", msg.id, conversation_key)
        return msg

    def system(self, conversation_key: str, text: str, session=None) -> ChatMessage:
        return self.append(conversation_key, SYSTEM_SENDER, text, is_system=True, session=session)

    def history(self, conversation_key: str) -> List[ChatMessage]:
        with get_session() as session:
            stmt = select(ChatMessage).where(ChatMessage.conversation_key == conversation_key).order_by(ChatMessage.id)
            return session.exec(stmt).all()

    def conversations(self, keys: Optional[Iterable[str]] = None) -> Dict[str, List[ChatMessage]]:
        with get_session() as session:
            stmt = select(ChatMessage).order_by(ChatMessage.id)
            if keys is not None:
                stmt = stmt.where(ChatMessage.conversation_key.in_(list(keys)))
            out: Dict[str, List[ChatMessage]] = {}
            for msg in session.exec(stmt).all():
                out.setdefault(msg.conversation_key, []).append(msg)
            return out
