"""Business logic services for the FixItNow chat service."""

from .chat import ChatService
from .conversations import ConversationSummary, derive_conversations
from .realtime import InMemoryBroker, PresenceRegistry, RedisBroker, SessionContext
from .result import Result

__all__ = [
    "ChatService",
    "ConversationSummary",
    "derive_conversations",
    "InMemoryBroker",
    "PresenceRegistry",
    "RedisBroker",
    "Result",
    "SessionContext",
]
