# src/fixitnow_chat/models/__init__.py
"""SQLAlchemy models for the FixItNow chat service."""

from .conversation import Conversation
from .message import Message, MessageType
from .user import User, UserRole

__all__ = [
    "Conversation",
    "Message", "MessageType",
    "User", "UserRole",
]
