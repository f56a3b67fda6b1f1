from app.models.conversation import Conversation, ConversationParticipant
from app.models.inbox import Bot, Inbox, UserInbox
from app.models.message import Message
from app.models.tenant import Tenant, TenantFeature
from app.models.user import User
from app.models.widget import ChatSdkSetting, Visitor

__all__ = [
    "Bot",
    "ChatSdkSetting",
    "Conversation",
    "ConversationParticipant",
    "Inbox",
    "Message",
    "Tenant",
    "TenantFeature",
    "User",
    "UserInbox",
    "Visitor",
]
