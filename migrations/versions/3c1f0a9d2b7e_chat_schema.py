"""chat schema

Revision ID: 3c1f0a9d2b7e
Revises:
Create Date: 2026-10-18 09:12:41.503118

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1f0a9d2b7e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create users, the message log and the conversation table."""
    op.create_table(
        "app_user",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "chat_message",
        sa.Column("id", _ID, autoincrement=True, nullable=False),
        sa.Column("sender_id", sa.BigInteger(), nullable=False),
        sa.Column("receiver_id", sa.BigInteger(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_type", sa.String(length=16), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["sender_id"], ["app_user.id"]),
        sa.ForeignKeyConstraint(["receiver_id"], ["app_user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_message_pair", "chat_message", ["sender_id", "receiver_id", "sent_at"])
    op.create_index("ix_chat_message_unread", "chat_message", ["receiver_id", "is_read"])
    op.create_table(
        "chat_conversation",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("user_low_id", sa.BigInteger(), nullable=False),
        sa.Column("user_high_id", sa.BigInteger(), nullable=False),
        sa.Column("last_message_id", sa.BigInteger(), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("unread_low", sa.Integer(), nullable=False),
        sa.Column("unread_high", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("user_low_id < user_high_id", name="ck_conversation_pair_order"),
        sa.ForeignKeyConstraint(["user_low_id"], ["app_user.id"]),
        sa.ForeignKeyConstraint(["user_high_id"], ["app_user.id"]),
        sa.ForeignKeyConstraint(["last_message_id"], ["chat_message.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chat_conversation_user_low_id", "chat_conversation", ["user_low_id"])
    op.create_index("ix_chat_conversation_user_high_id", "chat_conversation", ["user_high_id"])


def downgrade() -> None:
    """Drop the chat schema."""
    op.drop_index("ix_chat_conversation_user_high_id", table_name="chat_conversation")
    op.drop_index("ix_chat_conversation_user_low_id", table_name="chat_conversation")
    op.drop_table("chat_conversation")
    op.drop_index("ix_chat_message_unread", table_name="chat_message")
    op.drop_index("ix_chat_message_pair", table_name="chat_message")
    op.drop_table("chat_message")
    op.drop_table("app_user")
