# src/fixitnow_chat/models/user.py
"""Marketplace users as seen by the chat subsystem."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import BigInteger, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fixitnow_chat.db.session import Base
from fixitnow_chat.db.time import UTCDateTime, utcnow


class UserRole(str, enum.Enum):
    """Marketplace role of an account."""

    CUSTOMER = "CUSTOMER"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"


class User(Base):
    """Customer, provider or admin account.

    Identity, credentials and verification live in the wider marketplace;
    the chat only needs to resolve ids and show names.
    """

    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", native_enum=False, length=16),
        nullable=False,
        default=UserRole.CUSTOMER,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
