# src/fixitnow_chat/models/message.py
"""Models describing direct messages between users."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import BigInteger, Enum, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fixitnow_chat.db.session import Base
from fixitnow_chat.db.time import UTCDateTime, utcnow

from .user import User


class MessageType(str, enum.Enum):
    """Type tag carried by a message. Only TEXT has a body the server reads."""

    TEXT = "TEXT"
    IMAGE = "IMAGE"
    FILE = "FILE"
    SYSTEM = "SYSTEM"


class Message(Base):
    """Directed text message from one user to another.

    Rows are append-only; ``is_read`` is the only column that ever changes,
    and only from False to True.
    """

    __tablename__ = "chat_message"
    __table_args__ = (
        Index("ix_chat_message_pair", "sender_id", "receiver_id", "sent_at"),
        Index("ix_chat_message_unread", "receiver_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    sender_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("app_user.id"), nullable=False)
    receiver_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("app_user.id"), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[MessageType] = mapped_column(
        Enum(MessageType, name="message_type", native_enum=False, length=16),
        nullable=False,
        default=MessageType.TEXT,
    )

    sent_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    is_read: Mapped[bool] = mapped_column(default=False, nullable=False)

    sender: Mapped[User] = relationship("User", foreign_keys=[sender_id], lazy="joined")
    receiver: Mapped[User] = relationship("User", foreign_keys=[receiver_id], lazy="joined")

    def counterparty_of(self, user_id: int) -> int:
        """Return the other participant from ``user_id``'s point of view."""
        return self.receiver_id if self.sender_id == user_id else self.sender_id
