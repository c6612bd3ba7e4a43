"""Chat orchestration: send, read and query operations.

Each public operation runs as one unit of work on the SQLAlchemy session it
was built with. Real-time pushes happen only after the commit succeeded,
so a failed push never loses a message and never fails the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fixitnow_chat.core.errors import ChatStoreError, ChatValidationError, UserNotFoundError
from fixitnow_chat.core.settings import settings
from fixitnow_chat.models import Message, MessageType
from fixitnow_chat.repositories.conversation_repo import ConversationRepository
from fixitnow_chat.repositories.message_repo import MessageRepository
from fixitnow_chat.repositories.user_repo import UserRepository
from fixitnow_chat.schemas.chat import MessageResponse
from fixitnow_chat.utils.ids import conversation_id

from .conversations import ConversationSummary, derive_conversations
from .realtime import MessageBroker, conversation_topic, notification_queue
from .result import Result

# Configure logger for this module
logger = logging.getLogger(__name__)


def message_payload(message: Message) -> dict[str, Any]:
    """Return the JSON representation pushed to real-time subscribers."""
    return MessageResponse.from_message(message).model_dump(mode="json", by_alias=True)


class ChatService:
    """Service handling one-to-one chat between marketplace users."""

    def __init__(
        self,
        db: Session,
        broker: MessageBroker,
        *,
        max_message_length: int | None = None,
    ) -> None:
        self.db = db
        self.broker = broker
        self.users = UserRepository(db)
        self.messages = MessageRepository(db)
        self.conversations = ConversationRepository(db)
        self.max_message_length = max_message_length or settings.chat_max_message_length

    @contextmanager
    def _unit_of_work(self, *, commit: bool = True) -> Iterator[None]:
        """Commit on success; roll back and raise ``ChatStoreError`` on store failure."""
        try:
            yield
            if commit:
                self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Chat store failure: %s", exc, exc_info=True)
            raise ChatStoreError("Chat store is unavailable") from exc

    def _validate_content(self, content: str | None) -> str:
        """Return ``content`` unchanged once it has visible text within the limit."""
        text = content or ""
        if not text.strip():
            raise ChatValidationError("Message content cannot be empty")
        if len(text.strip()) > self.max_message_length:
            raise ChatValidationError(
                f"Message content exceeds {self.max_message_length} characters"
            )
        return text

    def _require_pair(self, sender_id: int, receiver_id: int) -> None:
        with self._unit_of_work(commit=False):
            self.users.require(sender_id, "Sender")
            self.users.require(receiver_id, "Receiver")

    # --- Queries ------------------------------------------------------------------

    def _summaries_for(self, user_id: int) -> list[ConversationSummary]:
        summaries = [
            ConversationSummary.from_conversation(user_id, row)
            for row in self.conversations.list_for_user(user_id)
        ]
        if not self.messages.has_messages(user_id):
            return summaries

        # Pairs whose history predates the conversation table have no row.
        covered = {summary.other_user_id for summary in summaries}
        orphaned = [
            message
            for message in self.messages.find_touching(user_id)
            if message.counterparty_of(user_id) not in covered
        ]
        if not orphaned:
            return summaries
        derived = derive_conversations(user_id, orphaned, self.messages.count_unread)
        logger.info(
            "Derived %d conversation(s) without rows for user %s from message log",
            len(derived),
            user_id,
        )
        summaries.extend(derived)
        summaries.sort(key=lambda s: (s.last_message_time, s.last_message_id), reverse=True)
        return summaries

    def try_list_conversations(self, user_id: int) -> Result[list[ConversationSummary]]:
        """Build the user's conversation list, capturing internal failures.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        try:
            with self._unit_of_work(commit=False):
                self.users.require(user_id)
                summaries = self._summaries_for(user_id)
        except UserNotFoundError:
            raise
        except Exception as exc:
            logger.warning("Listing conversations for user %s failed: %s", user_id, exc, exc_info=True)
            return Result.failure(exc)
        return Result.success(summaries)

    def list_conversations(self, user_id: int) -> list[ConversationSummary]:
        """Return one summary per counterparty, most recent first.

        The conversation list is a non-critical view: internal failures
        yield an empty list instead of an error. A missing user still raises
        ``UserNotFoundError``.
        """
        return self.try_list_conversations(user_id).unwrap_or([])

    def list_messages(
        self,
        user_a: int,
        user_b: int,
        *,
        limit: int | None = None,
        before_id: int | None = None,
    ) -> list[Message]:
        """Return the messages between two users, oldest first.

        With ``limit`` only the most recent ``limit`` messages (older than
        ``before_id`` when given) are returned, still oldest first.
        """
        self._require_pair(user_a, user_b)
        with self._unit_of_work(commit=False):
            if limit is None and before_id is None:
                return self.messages.find_between(user_a, user_b)
            window = self.messages.find_between(
                user_a,
                user_b,
                newest_first=True,
                limit=limit,
                before_id=before_id,
            )
        return list(reversed(window))

    def unread_count(self, sender_id: int, receiver_id: int) -> int:
        """Return how many messages from ``sender_id`` ``receiver_id`` has not read."""
        self._require_pair(sender_id, receiver_id)
        with self._unit_of_work(commit=False):
            return self.messages.count_unread(sender_id, receiver_id)

    # --- Commands -----------------------------------------------------------------

    def send(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        """Persist a message and push it to the conversation and the receiver.

        Raises:
            ChatValidationError: Empty or oversized content, or a message to self.
            UserNotFoundError: Unknown sender or receiver.
            ChatStoreError: The store failed; nothing was persisted.
        """
        text = self._validate_content(content)
        if sender_id == receiver_id:
            raise ChatValidationError("Cannot send a message to yourself")
        self._require_pair(sender_id, receiver_id)

        with self._unit_of_work():
            message = self.messages.create(sender_id, receiver_id, text, message_type)
            self.conversations.record_message(message)

        payload = message_payload(message)
        key = conversation_id(sender_id, receiver_id)
        self.broker.publish(conversation_topic(key), payload)
        self.broker.publish(notification_queue(receiver_id), payload)
        logger.info("Message %s sent in conversation %s", message.id, key)
        return message

    def mark_read(self, sender_id: int, receiver_id: int) -> None:
        """Mark every unread message from ``sender_id`` to ``receiver_id`` as read."""
        self._require_pair(sender_id, receiver_id)
        with self._unit_of_work():
            updated = self.messages.mark_read(sender_id, receiver_id)
            self.conversations.release_unread(sender_id, receiver_id, updated)

        if updated:
            key = conversation_id(sender_id, receiver_id)
            self.broker.publish(
                conversation_topic(key),
                {
                    "conversationId": key,
                    "senderId": sender_id,
                    "readerId": receiver_id,
                    "count": updated,
                },
                kind="read",
            )

    def rebuild_conversations(self, user_id: int | None = None) -> int:
        """Recompute conversation rows from the message log.

        Rebuilds the rows of ``user_id``, or of every user in the log when
        omitted. Returns the number of rows written.
        """
        written: set[str] = set()
        with self._unit_of_work():
            if user_id is not None:
                self.users.require(user_id)
                viewers = [user_id]
            else:
                viewers = self.messages.participants()
            for viewer in viewers:
                inbound = self.messages.count_unread_by_sender(viewer)
                summaries = derive_conversations(
                    viewer,
                    self.messages.find_touching(viewer),
                    lambda sender_id, _receiver_id: inbound.get(sender_id, 0),
                )
                for summary in summaries:
                    other = summary.other_user_id
                    self.conversations.upsert(
                        viewer,
                        other,
                        last_message_id=summary.last_message_id,
                        last_message_at=summary.last_message_time,
                        unread={
                            viewer: summary.unread_count,
                            other: self.messages.count_unread(viewer, other),
                        },
                    )
                    written.add(summary.id)
        logger.info("Rebuilt %d conversation rows", len(written))
        return len(written)
