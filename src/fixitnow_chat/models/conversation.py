# src/fixitnow_chat/models/conversation.py
"""Denormalized per-pair conversation state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fixitnow_chat.db.session import Base
from fixitnow_chat.db.time import UTCDateTime, utcnow

from .message import Message


class Conversation(Base):
    """One row per unordered pair of users who have exchanged messages.

    The primary key is the canonical ``"{low}-{high}"`` id, so a pair can
    never have two rows. The message log stays the source of truth; this
    table is kept in step with it inside the same transaction as each send
    and mark-read.
    """

    __tablename__ = "chat_conversation"
    __table_args__ = (CheckConstraint("user_low_id < user_high_id", name="ck_conversation_pair_order"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_low_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("app_user.id"), nullable=False, index=True)
    user_high_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("app_user.id"), nullable=False, index=True)

    last_message_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("chat_message.id"), nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    unread_low: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unread_high: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    last_message: Mapped[Message] = relationship("Message", lazy="joined")

    def other_participant(self, user_id: int) -> int:
        """Return the participant that is not ``user_id``."""
        return self.user_high_id if user_id == self.user_low_id else self.user_low_id

    def unread_for(self, user_id: int) -> int:
        """Return the unread counter kept for ``user_id``."""
        return self.unread_low if user_id == self.user_low_id else self.unread_high
