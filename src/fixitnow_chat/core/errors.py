"""Exceptions raised by the chat services.

The HTTP and WebSocket layers translate these into client responses:
``UserNotFoundError`` maps to 404, ``ChatValidationError`` to 400 and
``ChatStoreError`` to 500.
"""

from __future__ import annotations


class ChatError(RuntimeError):
    """Base exception for chat failures."""


class UserNotFoundError(ChatError):
    """Raised when a user id does not resolve to an existing account."""

    def __init__(self, user_id: int, role: str = "User") -> None:
        super().__init__(f"{role} not found")
        self.user_id = user_id
        self.role = role


class ChatValidationError(ChatError):
    """Raised when a request is malformed or violates a message rule."""


class InvalidConversationIdError(ChatValidationError):
    """Raised when a conversation id is not two dash-separated user ids."""

    def __init__(self, value: str) -> None:
        super().__init__("Conversation id must look like '<userId>-<userId>'")
        self.value = value


class ChatStoreError(ChatError):
    """Raised when the relational store fails underneath a chat operation."""
