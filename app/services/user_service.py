"""Agent lookup and presence persistence."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import User, UserInbox
from app.models.mixins import utcnow


class UserService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_agent(self, tenant_id: UUID, user_id: UUID) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.id == user_id, User.tenant_id == tenant_id)
            .first()
        )

    def get_agent_by_email(self, tenant_id: UUID, email: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.tenant_id == tenant_id, func.lower(User.email) == email.strip().lower())
            .first()
        )

    def set_online_status(self, tenant_id: UUID, user_id: UUID, is_online: bool) -> bool:
        """Write the online flag and last_seen; returns False if the agent is gone."""
        updated = (
            self.db.query(User)
            .filter(User.id == user_id, User.tenant_id == tenant_id)
            .update(
                {User.is_online: is_online, User.last_seen: utcnow()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated > 0

    def has_inbox_access(self, tenant_id: UUID, user_id: UUID, inbox_id: UUID) -> bool:
        return (
            self.db.query(UserInbox.id)
            .filter(
                UserInbox.tenant_id == tenant_id,
                UserInbox.user_id == user_id,
                UserInbox.inbox_id == inbox_id,
            )
            .first()
            is not None
        )
