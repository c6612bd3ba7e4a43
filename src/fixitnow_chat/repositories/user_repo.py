"""Data access helpers for marketplace users."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from fixitnow_chat.core.errors import UserNotFoundError
from fixitnow_chat.models import User, UserRole

__all__ = ["UserRepository"]


class UserRepository:
    """Thin wrapper around database access for user rows."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User | None:
        """Return a user by primary key."""
        return self.session.get(User, user_id)

    def require(self, user_id: int, role: str = "User") -> User:
        """Return a user by primary key or raise ``UserNotFoundError``.

        ``role`` only shapes the error message ("Sender not found", ...).
        """
        user = self.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id, role)
        return user

    def get_by_email(self, email: str) -> User | None:
        result = self.session.execute(select(User).where(User.email == email))
        return result.scalars().first()

    def create(self, *, name: str, email: str, role: UserRole = UserRole.CUSTOMER) -> User:
        """Insert a new user and flush so the id is assigned."""
        user = User(name=name, email=email, role=role)
        self.session.add(user)
        self.session.flush()
        return user
