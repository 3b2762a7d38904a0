"""init inbox schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ENUMS: dict[str, tuple[str, ...]] = {
    "conversation_channel": ("whatsapp", "internal"),
    "conversation_status": ("open", "closed"),
    "conversation_context": ("sales", "post_sales"),
    "deal_status": ("open", "won", "lost"),
    "message_type": (
        "text",
        "image",
        "video",
        "audio",
        "document",
        "template",
        "interactive",
        "reaction",
    ),
    "message_direction": ("in", "out"),
    "message_status": ("pending", "sent", "delivered", "read", "failed", "scheduled"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*_ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in _ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.String(length=254), nullable=True),
        sa.Column("company", sa.String(length=200), nullable=True),
        sa.Column(
            "channel",
            _enum("conversation_channel"),
            nullable=False,
            server_default=sa.text("'whatsapp'"),
        ),
        sa.Column(
            "status",
            _enum("conversation_status"),
            nullable=False,
            server_default=sa.text("'open'"),
        ),
        sa.Column("assigned_to", sa.String(length=120), nullable=True),
        sa.Column(
            "context",
            _enum("conversation_context"),
            nullable=False,
            server_default=sa.text("'sales'"),
        ),
        sa.Column(
            "deal_status",
            _enum("deal_status"),
            nullable=False,
            server_default=sa.text("'open'"),
        ),
        sa.Column("last_message_preview", sa.Text(), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unread_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("transferred_to_post_sales_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("unread_count >= 0", name="ck_conversations_unread_count"),
    )
    op.create_index("ix_conversations_phone", "conversations", ["phone"], unique=False)
    op.create_index(
        "ix_conversations_assigned_to", "conversations", ["assigned_to"], unique=False
    )

    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("type", _enum("message_type"), nullable=False),
        sa.Column("direction", _enum("message_direction"), nullable=False),
        sa.Column("status", _enum("message_status"), nullable=False),
        sa.Column("sender_id", sa.String(length=120), nullable=True),
        sa.Column("media_url", sa.Text(), nullable=True),
        sa.Column("media_name", sa.String(length=255), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"], unique=False)
    op.create_index(
        "ix_messages_provider_message_id", "messages", ["provider_message_id"], unique=False
    )
    op.create_index("ix_messages_created_at", "messages", ["created_at"], unique=False)

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=120), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("settings")

    op.drop_index("ix_messages_created_at", table_name="messages")
    op.drop_index("ix_messages_provider_message_id", table_name="messages")
    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_table("messages")

    op.drop_index("ix_conversations_assigned_to", table_name="conversations")
    op.drop_index("ix_conversations_phone", table_name="conversations")
    op.drop_table("conversations")

    bind = op.get_bind()
    for name in reversed(list(_ENUMS)):
        sa.Enum(name=name).drop(bind, checkfirst=True)
