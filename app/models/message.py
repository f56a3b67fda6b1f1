"""Message model: immutable except for the delivery status."""

from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text, Uuid

from app.constants.chat import MessageStatus, MessageType
from app.db import Base
from app.models.mixins import utcnow


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index(
            "ix_messages_tenant_conversation_created",
            "tenant_id",
            "conversation_id",
            "created_at",
        ),
        CheckConstraint(
            "status IN ('sent', 'delivered', 'read')", name="ck_messages_status"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    conversation_id = Column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_type = Column(String(16), nullable=False)
    sender_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(String(16), nullable=False, default=MessageType.TEXT.value)
    status = Column(String(16), nullable=False, default=MessageStatus.SENT.value)
    created_at = Column(DateTime, default=utcnow, nullable=False)
