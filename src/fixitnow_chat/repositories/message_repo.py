"""Data access helpers for the chat message log."""
from __future__ import annotations

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from fixitnow_chat.db.time import utcnow
from fixitnow_chat.models import Message, MessageType

from .user_repo import UserRepository

__all__ = ["MessageRepository"]


def _between(user_a: int, user_b: int):
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


class MessageRepository:
    """Message store: the durable record of history and read state."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session)

    def create(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        """Insert a new unread message and return the persisted ORM instance.

        Raises:
            UserNotFoundError: If the sender or receiver does not exist.
        """
        sender = self.users.require(sender_id, "Sender")
        receiver = self.users.require(receiver_id, "Receiver")
        message = Message(
            sender=sender,
            receiver=receiver,
            content=content,
            message_type=message_type,
            sent_at=utcnow(),
            is_read=False,
        )
        self.session.add(message)
        self.session.flush()
        return message

    def find_between(
        self,
        user_a: int,
        user_b: int,
        *,
        newest_first: bool = False,
        limit: int | None = None,
        before_id: int | None = None,
    ) -> list[Message]:
        """Return the messages exchanged by two users.

        By default the full history is returned oldest first. With
        ``newest_first`` the order is reversed, which together with ``limit``
        and ``before_id`` yields a most-recent-first page.
        """
        stmt = select(Message).where(_between(user_a, user_b))
        if before_id is not None:
            stmt = stmt.where(Message.id < before_id)
        if newest_first:
            stmt = stmt.order_by(Message.sent_at.desc(), Message.id.desc())
        else:
            stmt = stmt.order_by(Message.sent_at.asc(), Message.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars())

    def find_touching(self, user_id: int) -> list[Message]:
        """Return every message sent or received by ``user_id``, oldest first."""
        stmt = (
            select(Message)
            .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
            .order_by(Message.sent_at.asc(), Message.id.asc())
        )
        return list(self.session.execute(stmt).scalars())

    def find_all(self) -> list[Message]:
        stmt = select(Message).order_by(Message.sent_at.asc(), Message.id.asc())
        return list(self.session.execute(stmt).scalars())

    def has_messages(self, user_id: int) -> bool:
        stmt = (
            select(Message.id)
            .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
            .limit(1)
        )
        return self.session.execute(stmt).first() is not None

    def participants(self) -> list[int]:
        """Return the ids of all users that appear in the log."""
        senders = select(Message.sender_id.label("user_id"))
        receivers = select(Message.receiver_id.label("user_id"))
        union = senders.union(receivers).subquery()
        rows = self.session.execute(select(union.c.user_id).order_by(union.c.user_id))
        return [int(row[0]) for row in rows]

    def count_unread(self, sender_id: int, receiver_id: int) -> int:
        """Return how many messages from ``sender_id`` ``receiver_id`` has not read."""
        stmt = select(func.count(Message.id)).where(
            Message.sender_id == sender_id,
            Message.receiver_id == receiver_id,
            Message.is_read.is_(False),
        )
        return int(self.session.execute(stmt).scalar() or 0)

    def count_unread_by_sender(self, receiver_id: int) -> dict[int, int]:
        """Return unread counts for ``receiver_id`` keyed by sender id."""
        stmt = (
            select(Message.sender_id, func.count(Message.id))
            .where(Message.receiver_id == receiver_id, Message.is_read.is_(False))
            .group_by(Message.sender_id)
        )
        return {int(sender_id): int(count) for sender_id, count in self.session.execute(stmt)}

    def mark_read(self, sender_id: int, receiver_id: int) -> int:
        """Flip every unread message from ``sender_id`` to ``receiver_id`` to read.

        Set-based and idempotent: a second call matches no rows. Returns the
        number of rows changed.
        """
        stmt = (
            update(Message)
            .where(
                Message.sender_id == sender_id,
                Message.receiver_id == receiver_id,
                Message.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)
