"""Shared API dependencies and error translation."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from fixitnow_chat.core.errors import (
    ChatError,
    ChatStoreError,
    ChatValidationError,
    UserNotFoundError,
)
from fixitnow_chat.db.session import get_db
from fixitnow_chat.services.chat import ChatService
from fixitnow_chat.services.realtime import (
    MessageBroker,
    PresenceRegistry,
    get_broker,
    get_presence_registry,
)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_broker_dep() -> MessageBroker:
    """Return the shared real-time broker."""
    return get_broker()


def get_presence_dep() -> PresenceRegistry:
    """Return the shared presence registry."""
    return get_presence_registry()


BrokerDep = Annotated[MessageBroker, Depends(get_broker_dep)]
PresenceDep = Annotated[PresenceRegistry, Depends(get_presence_dep)]


def get_chat_service(db: SessionDep, broker: BrokerDep) -> ChatService:
    """Build a chat service bound to the request's database session."""
    return ChatService(db, broker)


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


def to_http_error(exc: ChatError) -> HTTPException:
    """Translate a chat exception into the matching HTTP error.

    Args:
        exc: Exception raised by the chat service

    Returns:
        HTTPException carrying the status code and detail for the client
    """
    if isinstance(exc, UserNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ChatValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, ChatStoreError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
