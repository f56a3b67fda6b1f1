"""initialize database

Revision ID: initialize_database
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "initialize_database"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _tenant_fk() -> sa.Column:
    return sa.Column(
        "tenant_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")
        ),
    ]


def upgrade() -> None:
    """Tenancy, agents, widget visitors, conversations and messages."""
    op.create_table(
        "tenants",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=True, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "tenant_features",
        _id(),
        _tenant_fk(),
        sa.Column("feature_name", sa.String(length=64), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("tenant_id", "feature_name", name="uq_tenant_features_name"),
    )

    op.create_table(
        "inboxes",
        _id(),
        _tenant_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("bot_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_inboxes_tenant_id", "inboxes", ["tenant_id"])

    op.create_table(
        "bots",
        _id(),
        _tenant_fk(),
        sa.Column(
            "inbox_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("inboxes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("default_reply", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_bots_tenant_id", "bots", ["tenant_id"])

    op.create_table(
        "users",
        _id(),
        _tenant_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_seen", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    op.create_table(
        "user_inboxes",
        _id(),
        _tenant_fk(),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "inbox_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("inboxes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.UniqueConstraint("tenant_id", "user_id", "inbox_id", name="uq_user_inboxes"),
    )

    op.create_table(
        "chat_sdk_settings",
        _id(),
        _tenant_fk(),
        sa.Column("api_key", sa.String(length=128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index(
        "ix_chat_sdk_settings_api_key", "chat_sdk_settings", ["api_key"], unique=True
    )

    op.create_table(
        "external_visitors",
        _id(),
        _tenant_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("referrer_url", sa.String(length=1024), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column(
            "last_activity", sa.DateTime(), nullable=False, server_default=sa.text("now()")
        ),
        *_timestamps(),
    )
    op.create_index("ix_external_visitors_tenant_id", "external_visitors", ["tenant_id"])

    op.create_table(
        "conversations",
        _id(),
        _tenant_fk(),
        sa.Column(
            "inbox_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("inboxes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column(
            "assigned_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("last_message_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('open', 'pending', 'closed')", name="ck_conversations_status"
        ),
    )
    op.create_index(
        "ix_conversations_tenant_inbox_status",
        "conversations",
        ["tenant_id", "inbox_id", "status"],
    )

    op.create_table(
        "conversation_participants",
        _id(),
        _tenant_fk(),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("participant_type", sa.String(length=16), nullable=False),
        sa.Column("participant_id", sa.String(length=64), nullable=False),
        sa.Column(
            "joined_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")
        ),
        sa.UniqueConstraint(
            "tenant_id",
            "conversation_id",
            "participant_type",
            "participant_id",
            name="uq_conversation_participants_member",
        ),
    )
    op.create_index(
        "ix_conversation_participants_lookup",
        "conversation_participants",
        ["tenant_id", "participant_type", "participant_id"],
    )

    op.create_table(
        "messages",
        _id(),
        _tenant_fk(),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_type", sa.String(length=16), nullable=False),
        sa.Column("sender_id", sa.String(length=64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_type", sa.String(length=16), nullable=False, server_default="text"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="sent"),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")
        ),
        sa.CheckConstraint(
            "status IN ('sent', 'delivered', 'read')", name="ck_messages_status"
        ),
    )
    op.create_index(
        "ix_messages_tenant_conversation_created",
        "messages",
        ["tenant_id", "conversation_id", "created_at"],
    )


def downgrade() -> None:
    """Drop every table in reverse dependency order."""
    op.drop_index("ix_messages_tenant_conversation_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index(
        "ix_conversation_participants_lookup", table_name="conversation_participants"
    )
    op.drop_table("conversation_participants")
    op.drop_index("ix_conversations_tenant_inbox_status", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("ix_external_visitors_tenant_id", table_name="external_visitors")
    op.drop_table("external_visitors")
    op.drop_index("ix_chat_sdk_settings_api_key", table_name="chat_sdk_settings")
    op.drop_table("chat_sdk_settings")
    op.drop_table("user_inboxes")
    op.drop_index("ix_users_tenant_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_bots_tenant_id", table_name="bots")
    op.drop_table("bots")
    op.drop_index("ix_inboxes_tenant_id", table_name="inboxes")
    op.drop_table("inboxes")
    op.drop_table("tenant_features")
    op.drop_table("tenants")
