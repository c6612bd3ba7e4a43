"""Conversation identity and per-user conversation summaries.

A conversation is never a first-class object in the message log: it is the
set of messages exchanged by an unordered pair of users. This module derives
one summary per counterparty from a user's messages.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from fixitnow_chat.models import Conversation, Message
from fixitnow_chat.utils.ids import conversation_id, parse_conversation_id

__all__ = [
    "ConversationSummary",
    "conversation_id",
    "derive_conversations",
    "parse_conversation_id",
]


def _recency(message: Message) -> tuple[datetime, int]:
    # Equal timestamps fall back to the higher id.
    return message.sent_at, message.id


@dataclass(frozen=True)
class ConversationSummary:
    """One row of a user's conversation list."""

    id: str
    other_user_id: int
    other_user_name: str
    last_message_id: int
    last_message_text: str
    last_message_time: datetime
    last_message_sender: str
    unread_count: int

    @classmethod
    def from_message(cls, viewer_id: int, message: Message, unread_count: int) -> ConversationSummary:
        other = message.receiver if message.sender_id == viewer_id else message.sender
        return cls(
            id=conversation_id(viewer_id, other.id),
            other_user_id=other.id,
            other_user_name=other.name,
            last_message_id=message.id,
            last_message_text=message.content,
            last_message_time=message.sent_at,
            last_message_sender=message.sender.name,
            unread_count=unread_count,
        )

    @classmethod
    def from_conversation(cls, viewer_id: int, conversation: Conversation) -> ConversationSummary:
        return cls.from_message(
            viewer_id,
            conversation.last_message,
            conversation.unread_for(viewer_id),
        )


def derive_conversations(
    user_id: int,
    messages: Iterable[Message],
    count_unread: Callable[[int, int], int],
) -> list[ConversationSummary]:
    """Group a user's messages into one summary per counterparty.

    Args:
        user_id: The viewer whose conversation list is being built.
        messages: Inbound and outbound messages of the viewer. Messages that
            do not involve the viewer are ignored.
        count_unread: ``count_unread(sender_id, receiver_id)`` returning the
            number of unread messages from ``sender_id`` to ``receiver_id``.

    Returns:
        Summaries ordered by last message time, most recent first.
    """
    latest: dict[int, Message] = {}
    for message in messages:
        if user_id not in (message.sender_id, message.receiver_id):
            continue
        other_id = message.counterparty_of(user_id)
        current = latest.get(other_id)
        if current is None or _recency(message) > _recency(current):
            latest[other_id] = message

    summaries = [
        ConversationSummary.from_message(user_id, message, count_unread(other_id, user_id))
        for other_id, message in latest.items()
    ]
    summaries.sort(key=lambda s: (s.last_message_time, s.last_message_id), reverse=True)
    return summaries
