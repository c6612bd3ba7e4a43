"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .chat import (
    ConversationSummaryResponse,
    MarkReadRequest,
    MessageCreate,
    MessageResponse,
    UnreadCountResponse,
)
from .user import UserCreate, UserResponse

__all__ = [
    "ConversationSummaryResponse",
    "MarkReadRequest",
    "MessageCreate", "MessageResponse",
    "UnreadCountResponse",
    "UserCreate", "UserResponse",
]
