"""Tenant resolution, widget keys and feature flags."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.constants.chat import DEFAULT_INBOX_NAME, Feature
from app.exceptions import InvalidCredential, NotFound, TenantInactive
from app.models import ChatSdkSetting, Inbox, Tenant, TenantFeature


class TenantService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_tenant(self, tenant_id: UUID) -> Optional[Tenant]:
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()

    def get_active_tenant(self, tenant_id: UUID) -> Tenant:
        tenant = self.get_tenant(tenant_id)
        if tenant is None:
            raise NotFound("Tenant not found")
        if not tenant.is_active:
            raise TenantInactive()
        return tenant

    def resolve_widget_key(self, api_key: str) -> Tenant:
        """
        Map a website API key to its tenant.

        Raises InvalidCredential for unknown or disabled keys and
        TenantInactive when the owning tenant is switched off.
        """
        if not api_key:
            raise InvalidCredential("Invalid API key")
        row = (
            self.db.query(ChatSdkSetting, Tenant)
            .join(Tenant, Tenant.id == ChatSdkSetting.tenant_id)
            .filter(
                ChatSdkSetting.api_key == api_key,
                ChatSdkSetting.is_active.is_(True),
            )
            .first()
        )
        if row is None:
            raise InvalidCredential("Invalid API key")
        _, tenant = row
        if not tenant.is_active:
            raise TenantInactive()
        return tenant

    def is_feature_enabled(self, tenant_id: UUID, feature: Feature) -> bool:
        """A feature is on only when an enabled row exists for it."""
        return (
            self.db.query(TenantFeature.id)
            .filter(
                TenantFeature.tenant_id == tenant_id,
                TenantFeature.feature_name == feature.value,
                TenantFeature.is_enabled.is_(True),
            )
            .first()
            is not None
        )

    def get_active_inbox(self, tenant_id: UUID, inbox_id: UUID) -> Inbox:
        inbox = (
            self.db.query(Inbox)
            .filter(
                Inbox.id == inbox_id,
                Inbox.tenant_id == tenant_id,
                Inbox.is_active.is_(True),
            )
            .first()
        )
        if inbox is None:
            raise NotFound("Invalid inbox")
        return inbox

    def get_default_inbox(self, tenant_id: UUID) -> Inbox:
        inbox = (
            self.db.query(Inbox)
            .filter(
                Inbox.tenant_id == tenant_id,
                Inbox.name == DEFAULT_INBOX_NAME,
                Inbox.is_active.is_(True),
            )
            .first()
        )
        if inbox is None:
            raise NotFound("No inbox available")
        return inbox

    def resolve_inbox(self, tenant_id: UUID, inbox_id: Optional[UUID]) -> Inbox:
        if inbox_id is None:
            return self.get_default_inbox(tenant_id)
        return self.get_active_inbox(tenant_id, inbox_id)
