"""Tenant and per-tenant feature flags."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, String, UniqueConstraint, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class Tenant(Base, TimestampMixin):
    """Isolation boundary; every other row carries a tenant_id."""

    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=True, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)


class TenantFeature(Base):
    __tablename__ = "tenant_features"
    __table_args__ = (
        UniqueConstraint("tenant_id", "feature_name", name="uq_tenant_features_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    feature_name = Column(String(64), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)
