# src/fixitnow_chat/api/v1/endpoints/realtime.py
"""WebSocket surface for live chat.

Clients send JSON frames with a ``type`` field:

- ``subscribe`` / ``unsubscribe``: ``{"destination": "conversation/1-2"}``
  or ``{"destination": "user/1/notifications"}``
- ``sendMessage``: ``{"conversationId", "senderId", "receiverId", "content"}``
- ``addUser``: ``{"conversationId", "sender"}`` (presence)
- ``markAsRead``: ``{"conversationId", "userId"}``

The server pushes ``{"type": "message" | "read", "destination", "payload"}``
frames and answers each client frame with an acknowledgement or an
``{"type": "error", "detail"}`` frame. Errors never close the socket.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from fixitnow_chat.core.errors import ChatError, ChatValidationError
from fixitnow_chat.models import MessageType
from fixitnow_chat.services.chat import ChatService, message_payload
from fixitnow_chat.services.realtime import (
    MessageBroker,
    PresenceRegistry,
    SessionContext,
    Subscriber,
    validate_destination,
)
from fixitnow_chat.utils.ids import conversation_id, parse_conversation_id

from ..dependencies import BrokerDep, PresenceDep, SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["realtime"])

Frame = dict[str, Any]


def _require_str(frame: Frame, key: str) -> str:
    value = frame.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ChatValidationError(f"'{key}' is required")
    return value


def _require_user_id(frame: Frame, key: str) -> int:
    value = frame.get(key)
    if isinstance(value, bool):
        raise ChatValidationError(f"'{key}' must be a user id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    raise ChatValidationError(f"'{key}' must be a user id")


class ChatConnection:
    """State and handlers of one WebSocket client."""

    def __init__(
        self,
        websocket: WebSocket,
        service: ChatService,
        broker: MessageBroker,
        presence: PresenceRegistry,
    ) -> None:
        self.websocket = websocket
        self.service = service
        self.broker = broker
        self.presence = presence
        self.context = SessionContext(session_id=uuid.uuid4().hex)
        self.subscriber: Subscriber = broker.connect()
        self._send_lock = asyncio.Lock()
        self._handlers: dict[str, Callable[[Frame], Awaitable[Frame]]] = {
            "subscribe": self.on_subscribe,
            "unsubscribe": self.on_unsubscribe,
            "sendMessage": self.on_send_message,
            "addUser": self.on_add_user,
            "markAsRead": self.on_mark_as_read,
        }

    async def send(self, frame: Frame) -> None:
        async with self._send_lock:
            await self.websocket.send_json(frame)

    async def forward(self) -> None:
        """Relay broker deliveries to the socket until cancelled."""
        async for delivery in self.subscriber:
            try:
                await self.send(delivery.as_frame())
            except Exception as exc:
                logger.debug("Push to %s dropped: %s", self.context.session_id, exc)
                return

    async def dispatch(self, raw: str) -> Frame:
        try:
            frame = json.loads(raw)
        except ValueError:
            return {"type": "error", "detail": "Frames must be JSON objects"}
        if not isinstance(frame, dict):
            return {"type": "error", "detail": "Frames must be JSON objects"}

        kind = frame.get("type")
        handler = self._handlers.get(kind) if isinstance(kind, str) else None
        if handler is None:
            return {"type": "error", "detail": f"Unknown frame type '{kind}'"}
        try:
            return await handler(frame)
        except ChatError as exc:
            return {"type": "error", "detail": str(exc)}
        except Exception:
            logger.exception("Unhandled error processing %s frame", frame.get("type"))
            return {"type": "error", "detail": "Internal server error"}

    async def on_subscribe(self, frame: Frame) -> Frame:
        destination = validate_destination(_require_str(frame, "destination"))
        await self.broker.subscribe(self.subscriber, destination)
        return {"type": "subscribed", "destination": destination}

    async def on_unsubscribe(self, frame: Frame) -> Frame:
        destination = validate_destination(_require_str(frame, "destination"))
        await self.broker.unsubscribe(self.subscriber, destination)
        return {"type": "unsubscribed", "destination": destination}

    async def on_send_message(self, frame: Frame) -> Frame:
        key = _require_str(frame, "conversationId")
        pair = parse_conversation_id(key)
        sender_id = _require_user_id(frame, "senderId")
        receiver_id = _require_user_id(frame, "receiverId")
        if conversation_id(*pair) != conversation_id(sender_id, receiver_id):
            raise ChatValidationError("Conversation id does not match sender and receiver")
        try:
            message_type = MessageType(frame.get("messageType", MessageType.TEXT.value))
        except ValueError as exc:
            raise ChatValidationError("Unknown message type") from exc
        content = frame.get("content")
        if not isinstance(content, str):
            raise ChatValidationError("'content' must be text")
        message = self.service.send(sender_id, receiver_id, content, message_type)
        return {"type": "sent", "payload": message_payload(message)}

    async def on_add_user(self, frame: Frame) -> Frame:
        key = _require_str(frame, "conversationId")
        user_a, user_b = parse_conversation_id(key)
        username = _require_str(frame, "sender")
        canonical = conversation_id(user_a, user_b)
        members = self.presence.join(self.context, username, canonical)
        return {"type": "joined", "conversationId": canonical, "members": members}

    async def on_mark_as_read(self, frame: Frame) -> Frame:
        key = _require_str(frame, "conversationId")
        user_a, user_b = parse_conversation_id(key)
        reader_id = _require_user_id(frame, "userId")
        if reader_id not in (user_a, user_b):
            raise ChatValidationError("User is not part of this conversation")
        other_id = user_b if reader_id == user_a else user_a
        self.service.mark_read(other_id, reader_id)
        return {"type": "markedRead", "conversationId": conversation_id(user_a, user_b)}

    async def close(self) -> None:
        self.presence.leave(self.context)
        await self.broker.disconnect(self.subscriber)


@router.websocket("/chat")
async def chat_socket(
    websocket: WebSocket,
    db: SessionDep,
    broker: BrokerDep,
    presence: PresenceDep,
) -> None:
    """Bidirectional chat channel for one client."""
    await websocket.accept()
    connection = ChatConnection(websocket, ChatService(db, broker), broker, presence)
    forwarder = asyncio.create_task(connection.forward())
    try:
        while True:
            raw = await websocket.receive_text()
            reply = await connection.dispatch(raw)
            await connection.send(reply)
    except WebSocketDisconnect:
        logger.debug("Chat socket %s disconnected", connection.context.session_id)
    finally:
        forwarder.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await forwarder
        await connection.close()
