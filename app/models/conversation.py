"""Conversation aggregate and its append-only membership."""

from __future__ import annotations

import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.constants.chat import ConversationStatus
from app.db import Base
from app.models.mixins import TimestampMixin, utcnow


class Conversation(Base, TimestampMixin):
    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_tenant_inbox_status", "tenant_id", "inbox_id", "status"),
        CheckConstraint(
            "status IN ('open', 'pending', 'closed')", name="ck_conversations_status"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    inbox_id = Column(
        Uuid, ForeignKey("inboxes.id", ondelete="CASCADE"), nullable=False
    )
    status = Column(String(16), nullable=False, default=ConversationStatus.OPEN.value)
    assigned_user_id = Column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    last_message_at = Column(DateTime, nullable=True)

    participants = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        order_by="ConversationParticipant.joined_at",
    )


class ConversationParticipant(Base):
    """One row per (conversation, participant type, participant id); never deleted."""

    __tablename__ = "conversation_participants"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "conversation_id",
            "participant_type",
            "participant_id",
            name="uq_conversation_participants_member",
        ),
        Index(
            "ix_conversation_participants_lookup",
            "tenant_id",
            "participant_type",
            "participant_id",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    conversation_id = Column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    participant_type = Column(String(16), nullable=False)  # 'user' | 'visitor' | 'bot'
    participant_id = Column(String(64), nullable=False)
    joined_at = Column(DateTime, nullable=False, default=utcnow)

    conversation = relationship("Conversation", back_populates="participants")
