"""Bot lookup and the canned auto-responder."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Bot, Inbox


class BotService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_inbox_bot(self, tenant_id: UUID, inbox_id: UUID) -> Optional[Bot]:
        """Active bot bound to the inbox, else the bot the inbox points at."""
        bot = (
            self.db.query(Bot)
            .filter(
                Bot.tenant_id == tenant_id,
                Bot.inbox_id == inbox_id,
                Bot.is_active.is_(True),
            )
            .first()
        )
        if bot is not None:
            return bot
        inbox = (
            self.db.query(Inbox)
            .filter(Inbox.id == inbox_id, Inbox.tenant_id == tenant_id)
            .first()
        )
        if inbox is None or inbox.bot_id is None:
            return None
        return (
            self.db.query(Bot)
            .filter(
                Bot.id == inbox.bot_id,
                Bot.tenant_id == tenant_id,
                Bot.is_active.is_(True),
            )
            .first()
        )

    def get_tenant_bot(self, tenant_id: UUID) -> Optional[Bot]:
        return (
            self.db.query(Bot)
            .filter(
                Bot.tenant_id == tenant_id,
                Bot.inbox_id.is_(None),
                Bot.is_active.is_(True),
            )
            .first()
        )

    def resolve_bot(self, tenant_id: UUID, inbox_id: UUID) -> Optional[Bot]:
        return self.get_inbox_bot(tenant_id, inbox_id) or self.get_tenant_bot(tenant_id)


class BotResponder:
    """Stateless: produces the single reply a bot sends to a visitor message."""

    def __init__(self, default_reply: Optional[str] = None) -> None:
        self.default_reply = default_reply or get_settings().bot_default_reply

    def reply(self, bot: Bot, visitor_message: str) -> str:
        return bot.default_reply or self.default_reply
