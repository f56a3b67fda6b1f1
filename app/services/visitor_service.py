"""Widget visitor sessions."""

from __future__ import annotations

import random
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import Visitor
from app.models.mixins import utcnow
from app.schemas.chat import VisitorInit


class VisitorService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_visitor(self, tenant_id: UUID, visitor_id: UUID) -> Optional[Visitor]:
        return (
            self.db.query(Visitor)
            .filter(Visitor.id == visitor_id, Visitor.tenant_id == tenant_id)
            .first()
        )

    def initialize_visitor_session(
        self, tenant_id: UUID, data: VisitorInit, ip_address: Optional[str] = None
    ) -> Visitor:
        visitor = Visitor(
            tenant_id=tenant_id,
            name=data.name or f"visitor-{random.randint(1000, 9999)}",
            email=data.email,
            phone=data.phone,
            session_id=data.session_id,
            ip_address=ip_address,
            user_agent=data.user_agent,
            referrer_url=data.referrer_url,
            status="active",
        )
        self.db.add(visitor)
        self.db.commit()
        self.db.refresh(visitor)
        return visitor

    def touch_activity(self, tenant_id: UUID, visitor_id: UUID) -> None:
        self.db.query(Visitor).filter(
            Visitor.id == visitor_id, Visitor.tenant_id == tenant_id
        ).update({Visitor.last_activity: utcnow()}, synchronize_session=False)
        self.db.commit()
