"""Inboxes, bots and agent inbox access."""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)

from app.db import Base
from app.models.mixins import TimestampMixin


class Inbox(Base, TimestampMixin):
    """Routing destination within a tenant (one per embedded widget)."""

    __tablename__ = "inboxes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # Not a foreign key: bots also reference inboxes.
    bot_id = Column(Uuid, nullable=True)


class Bot(Base, TimestampMixin):
    """Automated responder, bound to one inbox or (inbox_id NULL) to the whole tenant."""

    __tablename__ = "bots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    inbox_id = Column(
        Uuid, ForeignKey("inboxes.id", ondelete="SET NULL"), nullable=True
    )
    name = Column(String(255), nullable=False)
    default_reply = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class UserInbox(Base):
    __tablename__ = "user_inboxes"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "inbox_id", name="uq_user_inboxes"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    inbox_id = Column(
        Uuid, ForeignKey("inboxes.id", ondelete="CASCADE"), nullable=False
    )
