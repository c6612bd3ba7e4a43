"""Data access helpers for the per-pair conversation table."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fixitnow_chat.models import Conversation, Message
from fixitnow_chat.utils.ids import conversation_id

__all__ = ["ConversationRepository"]

logger = logging.getLogger(__name__)


class ConversationRepository:
    """Keeps ``chat_conversation`` rows in step with the message log.

    Every method only stages changes on the session; committing is left to
    the service that owns the unit of work.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_a: int, user_b: int) -> Conversation | None:
        """Return the row for a pair of users, if any."""
        return self.session.get(Conversation, conversation_id(user_a, user_b))

    def list_for_user(self, user_id: int) -> list[Conversation]:
        """Return the user's conversations, most recent activity first."""
        stmt = (
            select(Conversation)
            .where(or_(Conversation.user_low_id == user_id, Conversation.user_high_id == user_id))
            .order_by(Conversation.last_message_at.desc(), Conversation.last_message_id.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def _get_or_create(self, message: Message) -> tuple[Conversation, bool]:
        key = conversation_id(message.sender_id, message.receiver_id)
        conversation = self.session.get(Conversation, key)
        if conversation is not None:
            return conversation, False

        low, high = sorted((message.sender_id, message.receiver_id))
        conversation = Conversation(
            id=key,
            user_low_id=low,
            user_high_id=high,
            last_message=message,
            last_message_at=message.sent_at,
            unread_low=0,
            unread_high=0,
        )
        try:
            with self.session.begin_nested():
                self.session.add(conversation)
        except IntegrityError:
            # Another transaction created the pair first.
            logger.debug("Conversation %s created concurrently; reusing it", key)
            existing = self.session.get(Conversation, key, populate_existing=True)
            if existing is None:
                raise
            return existing, False
        return conversation, True

    def record_message(self, message: Message) -> Conversation:
        """Fold a freshly stored message into its conversation row."""
        conversation, created = self._get_or_create(message)
        if not created and (message.sent_at, message.id) >= (
            conversation.last_message_at,
            conversation.last_message_id,
        ):
            conversation.last_message = message
            conversation.last_message_at = message.sent_at

        if not message.is_read:
            # SQL-side increment so concurrent sends do not lose updates.
            if message.receiver_id == conversation.user_low_id:
                conversation.unread_low = Conversation.unread_low + 1
            else:
                conversation.unread_high = Conversation.unread_high + 1
        self.session.flush()
        return conversation

    def release_unread(self, sender_id: int, receiver_id: int, count: int) -> Conversation | None:
        """Take ``count`` read messages off the receiver's unread counter.

        The decrement is evaluated by the database and floored at zero, so
        increments committed by concurrent sends are kept.
        """
        conversation = self.get(sender_id, receiver_id)
        if conversation is None or count <= 0:
            return conversation
        if receiver_id == conversation.user_low_id:
            conversation.unread_low = case(
                (Conversation.unread_low > count, Conversation.unread_low - count),
                else_=0,
            )
        else:
            conversation.unread_high = case(
                (Conversation.unread_high > count, Conversation.unread_high - count),
                else_=0,
            )
        self.session.flush()
        return conversation

    def upsert(
        self,
        user_a: int,
        user_b: int,
        *,
        last_message_id: int,
        last_message_at: datetime,
        unread: dict[int, int],
    ) -> Conversation:
        """Overwrite a pair's row with recomputed state.

        ``unread`` maps each participant id to its unread count; missing
        participants keep their current counter.
        """
        key = conversation_id(user_a, user_b)
        low, high = sorted((user_a, user_b))
        conversation = self.session.get(Conversation, key)
        if conversation is None:
            conversation = Conversation(id=key, user_low_id=low, user_high_id=high, unread_low=0, unread_high=0)
            self.session.add(conversation)
        conversation.last_message_id = last_message_id
        conversation.last_message_at = last_message_at
        if low in unread:
            conversation.unread_low = unread[low]
        if high in unread:
            conversation.unread_high = unread[high]
        self.session.flush()
        self.session.expire(conversation, ["last_message"])
        return conversation
