"""Enumerations for conversations, participants and messages."""

from enum import StrEnum


class ParticipantType(StrEnum):
    """Kinds of conversation participants. ``user`` is a human agent."""

    USER = "user"
    VISITOR = "visitor"
    BOT = "bot"


class ConversationStatus(StrEnum):
    OPEN = "open"
    PENDING = "pending"
    CLOSED = "closed"


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class MessageStatus(StrEnum):
    """Delivery status; only ever advances in declaration order."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def lower_statuses(self) -> list["MessageStatus"]:
        """Statuses a message may advance from to reach this one."""
        return [s for s in MessageStatus if s.rank < self.rank]


_STATUS_RANK = {
    MessageStatus.SENT: 0,
    MessageStatus.DELIVERED: 1,
    MessageStatus.READ: 2,
}


class Feature(StrEnum):
    """Per-tenant feature flags."""

    CHAT_SDK = "chat_sdk"
    BOTS = "bots"


class PrincipalRole(StrEnum):
    AGENT = "agent"
    VISITOR_WIDGET = "visitor-widget"


DEFAULT_INBOX_NAME = "Default Inbox"
