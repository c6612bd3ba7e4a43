"""Helpers for the canonical conversation identifier."""

from __future__ import annotations

from fixitnow_chat.core.errors import InvalidConversationIdError

__all__ = ["conversation_id", "parse_conversation_id"]


def conversation_id(user_a: int, user_b: int) -> str:
    """Return the canonical ``"{low}-{high}"`` id for a pair of users."""
    low, high = sorted((int(user_a), int(user_b)))
    return f"{low}-{high}"


def parse_conversation_id(value: str) -> tuple[int, int]:
    """Split a conversation id into its two user ids.

    Accepts exactly two dash-separated positive integers, in either order.

    Raises:
        InvalidConversationIdError: If ``value`` has any other shape.
    """
    parts = value.split("-")
    if len(parts) != 2:
        raise InvalidConversationIdError(value)
    ids: list[int] = []
    for part in parts:
        if not (part.isascii() and part.isdigit()):
            raise InvalidConversationIdError(value)
        user_id = int(part)
        if user_id <= 0:
            raise InvalidConversationIdError(value)
        ids.append(user_id)
    return ids[0], ids[1]
