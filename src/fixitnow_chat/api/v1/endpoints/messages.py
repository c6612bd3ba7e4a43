# src/fixitnow_chat/api/v1/endpoints/messages.py
"""Chat message endpoints for the FixItNow API."""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status

from fixitnow_chat.core.errors import ChatError
from fixitnow_chat.core.settings import settings
from fixitnow_chat.schemas.chat import (
    ConversationSummaryResponse,
    MarkReadRequest,
    MessageCreate,
    MessageResponse,
    UnreadCountResponse,
)
from fixitnow_chat.utils.ids import parse_conversation_id

from ..dependencies import ChatServiceDep, to_http_error

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/conversations/{user_id}", response_model=list[ConversationSummaryResponse])
async def get_conversations(user_id: int, service: ChatServiceDep) -> list[ConversationSummaryResponse]:
    """List the user's conversations, most recent first.

    Internal failures yield an empty list rather than an error.
    """
    try:
        summaries = service.list_conversations(user_id)
    except ChatError as exc:
        raise to_http_error(exc) from exc
    return [ConversationSummaryResponse.from_summary(summary) for summary in summaries]


@router.get("/conversation/{conversation_id}", response_model=list[MessageResponse])
async def get_conversation_messages(
    conversation_id: str,
    service: ChatServiceDep,
    limit: int | None = Query(None, ge=1, le=settings.chat_history_page_max),
    before: int | None = Query(None, ge=1),
) -> list[MessageResponse]:
    """Return the messages of a conversation, oldest first.

    ``conversation_id`` is ``"{userId}-{userId}"``. With ``limit`` only the
    most recent page (older than message id ``before``) is returned.
    """
    try:
        user_a, user_b = parse_conversation_id(conversation_id)
        messages = service.list_messages(user_a, user_b, limit=limit, before_id=before)
    except ChatError as exc:
        raise to_http_error(exc) from exc
    return [MessageResponse.from_message(message) for message in messages]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=MessageResponse)
async def send_message(message_data: MessageCreate, service: ChatServiceDep) -> MessageResponse:
    """Send a message and push it to subscribers."""
    try:
        message = service.send(
            message_data.sender_id,
            message_data.receiver_id,
            message_data.text,
            message_data.message_type,
        )
    except ChatError as exc:
        raise to_http_error(exc) from exc
    return MessageResponse.from_message(message)


@router.post("/mark-read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_messages_read(request: MarkReadRequest, service: ChatServiceDep) -> Response:
    """Mark every unread message from the sender to the receiver as read."""
    try:
        service.mark_read(request.sender_id, request.receiver_id)
    except ChatError as exc:
        raise to_http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    service: ChatServiceDep,
    sender_id: int = Query(..., alias="senderId"),
    receiver_id: int = Query(..., alias="receiverId"),
) -> UnreadCountResponse:
    """Return how many messages from the sender the receiver has not read."""
    try:
        count = service.unread_count(sender_id, receiver_id)
    except ChatError as exc:
        raise to_http_error(exc) from exc
    return UnreadCountResponse(unread_count=count)
