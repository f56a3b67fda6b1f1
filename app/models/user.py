"""Agent users. Credentials live elsewhere; this core only reads identity and presence."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    is_online = Column(Boolean, nullable=False, default=False)
    last_seen = Column(DateTime, nullable=True)
