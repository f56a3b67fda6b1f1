from app.services.bot_service import BotResponder, BotService
from app.services.chat_service import ChatService, SendResult
from app.services.conversation_service import ConversationService
from app.services.tenant_service import TenantService
from app.services.user_service import UserService
from app.services.visitor_service import VisitorService

__all__ = [
    "BotResponder",
    "BotService",
    "ChatService",
    "ConversationService",
    "SendResult",
    "TenantService",
    "UserService",
    "VisitorService",
]
