"""Chat-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fixitnow_chat.models import Message, MessageType
from fixitnow_chat.utils.ids import conversation_id

if TYPE_CHECKING:
    from fixitnow_chat.services.conversations import ConversationSummary


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageCreate(CamelModel):
    """Schema for sending a new message."""

    sender_id: int = Field(..., description="Id of the sending user")
    receiver_id: int = Field(..., description="Id of the receiving user")
    text: str = Field(
        ...,
        validation_alias=AliasChoices("text", "content"),
        description="Message body",
    )
    message_type: MessageType = Field(MessageType.TEXT, description="Type tag of the message")


class MarkReadRequest(CamelModel):
    """Schema for marking a sender's messages to a receiver as read."""

    sender_id: int
    receiver_id: int


class MessageResponse(CamelModel):
    """Schema for a message returned by the API and pushed in real time."""

    id: int
    conversation_id: str
    sender_id: int
    sender_name: str
    receiver_id: int
    receiver_name: str
    content: str
    message_type: MessageType
    sent_at: datetime
    is_read: bool

    @classmethod
    def from_message(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.id,
            conversation_id=conversation_id(message.sender_id, message.receiver_id),
            sender_id=message.sender_id,
            sender_name=message.sender.name,
            receiver_id=message.receiver_id,
            receiver_name=message.receiver.name,
            content=message.content,
            message_type=message.message_type,
            sent_at=message.sent_at,
            is_read=message.is_read,
        )


class ConversationSummaryResponse(CamelModel):
    """Schema for one entry of a user's conversation list."""

    id: str
    other_user_id: int
    other_user_name: str
    last_message_id: int
    last_message_text: str
    last_message_time: datetime
    last_message_sender: str
    unread_count: int

    @classmethod
    def from_summary(cls, summary: ConversationSummary) -> ConversationSummaryResponse:
        return cls(
            id=summary.id,
            other_user_id=summary.other_user_id,
            other_user_name=summary.other_user_name,
            last_message_id=summary.last_message_id,
            last_message_text=summary.last_message_text,
            last_message_time=summary.last_message_time,
            last_message_sender=summary.last_message_sender,
            unread_count=summary.unread_count,
        )


class UnreadCountResponse(CamelModel):
    """Schema for the unread counter of one sender/receiver pair."""

    unread_count: int
