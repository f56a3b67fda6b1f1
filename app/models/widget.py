"""Widget identity keys and the anonymous visitors they create."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin, utcnow


class ChatSdkSetting(Base, TimestampMixin):
    """Maps a website API key to its tenant."""

    __tablename__ = "chat_sdk_settings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    api_key = Column(String(128), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)


class Visitor(Base, TimestampMixin):
    __tablename__ = "external_visitors"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    session_id = Column(String(255), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    referrer_url = Column(String(1024), nullable=True)
    status = Column(String(16), nullable=False, default="active")
    last_activity = Column(DateTime, nullable=False, default=utcnow)
