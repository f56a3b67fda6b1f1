"""
Access control and message flow shared by the HTTP and realtime transports.

Both transports call into ChatService so that a given operation is always
authorized the same way: the conversation must exist inside the caller's
tenant and the caller must be one of its participants.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from app.constants.chat import (
    ConversationStatus,
    Feature,
    MessageType,
    ParticipantType,
)
from app.exceptions import (
    AccessDenied,
    InternalFailure,
    NotFound,
    ValidationError,
)
from app.infra.logging_config import get_logger
from app.models import Conversation, ConversationParticipant, Message, User
from app.schemas.chat import MAX_MESSAGE_LENGTH, ParticipantRef
from app.services.bot_service import BotResponder, BotService
from app.services.conversation_service import AssignmentChanged, ConversationService
from app.services.tenant_service import TenantService
from app.services.user_service import UserService
from app.services.visitor_service import VisitorService

logger = get_logger("chat")


@dataclass
class SendResult:
    message: Message
    bot_reply: Optional[Message] = None


@dataclass
class VisitorChat:
    conversation: Conversation
    created: bool
    message: Optional[Message] = None
    bot_reply: Optional[Message] = None


@dataclass
class PeerConversation:
    conversation: Conversation
    target: User
    created: bool


class ChatService:
    def __init__(self, db: Session, responder: Optional[BotResponder] = None) -> None:
        self.db = db
        self.conversations = ConversationService(db)
        self.tenants = TenantService(db)
        self.users = UserService(db)
        self.bots = BotService(db)
        self.visitors = VisitorService(db)
        self.responder = responder or BotResponder()

    @contextmanager
    def _persistence(self, action: str, tenant_id, conversation_id, principal) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(
                "Persistence failure during %s (tenant=%s conversation=%s principal=%s)",
                action,
                tenant_id,
                conversation_id,
                principal,
            )
            raise InternalFailure() from e

    # -- access control -----------------------------------------------------

    def authorize(
        self, tenant_id: UUID, conversation_id: UUID, participant: ParticipantRef
    ) -> Conversation:
        conversation = self.conversations.get_conversation(tenant_id, conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        if not self.conversations.is_participant(tenant_id, conversation_id, participant):
            raise AccessDenied()
        return conversation

    # -- messages -----------------------------------------------------------

    @staticmethod
    def validate_content(content, message_type=MessageType.TEXT) -> tuple[str, MessageType]:
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError("Message content is too long")
        try:
            kind = MessageType(message_type or MessageType.TEXT)
        except ValueError:
            raise ValidationError(f"Unsupported message type: {message_type}") from None
        return content, kind

    def send_message(
        self,
        tenant_id: UUID,
        conversation_id: UUID,
        sender: ParticipantRef,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> SendResult:
        content, kind = self.validate_content(content, message_type)
        with self._persistence("send_message", tenant_id, conversation_id, sender):
            conversation = self.authorize(tenant_id, conversation_id, sender)
            message = self.conversations.append_message(
                tenant_id, conversation_id, sender, content, kind
            )
        logger.debug(
            "Message %s appended to conversation %s by %s:%s",
            message.id,
            conversation_id,
            sender.participant_type,
            sender.participant_id,
        )
        bot_reply = None
        if sender.participant_type == ParticipantType.VISITOR:
            bot_reply = self._after_visitor_message(conversation, message, sender)
        return SendResult(message=message, bot_reply=bot_reply)

    def _after_visitor_message(
        self, conversation: Conversation, message: Message, sender: ParticipantRef
    ) -> Optional[Message]:
        """
        Follow-up work for a committed visitor message.

        The visitor message is already stored, so a failure here is logged and
        the message is still returned for fan-out.
        """
        message_id, conversation_id = message.id, conversation.id
        try:
            self.visitors.touch_activity(conversation.tenant_id, UUID(sender.participant_id))
            return self._bot_reply(conversation, message)
        except Exception:
            self.db.rollback()
            logger.exception(
                "Bot reply failed for message %s in conversation %s",
                message_id,
                conversation_id,
            )
            return None

    def _bot_reply(self, conversation: Conversation, message: Message) -> Optional[Message]:
        """One canned reply while no human agent is assigned."""
        tenant_id = conversation.tenant_id
        self.db.refresh(conversation)
        if conversation.assigned_user_id is not None:
            return None
        if not self.tenants.is_feature_enabled(tenant_id, Feature.BOTS):
            return None
        bot = self.bots.resolve_bot(tenant_id, conversation.inbox_id)
        if bot is None:
            return None
        bot_ref = ParticipantRef(participant_type=ParticipantType.BOT, participant_id=bot.id)
        self.conversations.ensure_participant(tenant_id, conversation.id, bot_ref)
        try:
            reply = self.conversations.append_message(
                tenant_id,
                conversation.id,
                bot_ref,
                self.responder.reply(bot, message.content),
                MessageType.TEXT,
                require_unassigned=True,
            )
        except AssignmentChanged:
            logger.info(
                "Skipping bot reply in conversation %s: agent assigned meanwhile",
                conversation.id,
            )
            return None
        return reply

    def mark_read(
        self, tenant_id: UUID, conversation_id: UUID, reader: ParticipantRef
    ) -> int:
        with self._persistence("mark_read", tenant_id, conversation_id, reader):
            self.authorize(tenant_id, conversation_id, reader)
            return self.conversations.mark_read(tenant_id, conversation_id, reader)

    def messages_query(
        self, tenant_id: UUID, conversation_id: UUID, reader: ParticipantRef
    ) -> Query:
        self.authorize(tenant_id, conversation_id, reader)
        return self.conversations.get_messages_query(tenant_id, conversation_id)

    def list_messages(
        self,
        tenant_id: UUID,
        conversation_id: UUID,
        reader: ParticipantRef,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Message]:
        return self.messages_query(tenant_id, conversation_id, reader).offset(skip).limit(limit).all()

    # -- conversations ------------------------------------------------------

    def conversations_query(
        self,
        tenant_id: UUID,
        participant: ParticipantRef,
        status: Optional[ConversationStatus] = None,
    ) -> Query:
        return self.conversations.get_conversations_query(tenant_id, participant, status)

    def list_conversations(
        self,
        tenant_id: UUID,
        participant: ParticipantRef,
        status: Optional[ConversationStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Conversation]:
        return self.conversations.list_conversations(
            tenant_id, participant, status, skip=skip, limit=limit
        )

    def list_participants(
        self, tenant_id: UUID, conversation_id: UUID, reader: ParticipantRef
    ) -> List[ConversationParticipant]:
        self.authorize(tenant_id, conversation_id, reader)
        return self.conversations.list_participants(tenant_id, conversation_id)

    def update_status(
        self,
        tenant_id: UUID,
        conversation_id: UUID,
        actor: ParticipantRef,
        status: ConversationStatus,
    ) -> Conversation:
        try:
            status = ConversationStatus(status)
        except ValueError:
            raise ValidationError(f"Unsupported status: {status}") from None
        with self._persistence("update_status", tenant_id, conversation_id, actor):
            self.authorize(tenant_id, conversation_id, actor)
            conversation = self.conversations.update_status(tenant_id, conversation_id, status)
        logger.info("Conversation %s status set to %s", conversation_id, status)
        return conversation

    def start_visitor_chat(
        self,
        tenant_id: UUID,
        visitor_id: UUID,
        inbox_id: Optional[UUID],
        message: Optional[str] = None,
    ) -> VisitorChat:
        """
        Find the visitor's open conversation in the inbox or create one.

        A new conversation gets the visitor plus, when the tenant has bots
        enabled and one is configured, the bot as participants.
        """
        visitor = self.visitors.get_visitor(tenant_id, visitor_id)
        if visitor is None:
            raise NotFound("Visitor not found")
        inbox = self.tenants.resolve_inbox(tenant_id, inbox_id)
        visitor_ref = ParticipantRef(
            participant_type=ParticipantType.VISITOR, participant_id=visitor.id
        )
        with self._persistence("start_visitor_chat", tenant_id, None, visitor_ref):
            conversation = self.conversations.find_open_visitor_conversation(
                tenant_id, inbox.id, visitor.id
            )
            created = conversation is None
            if created:
                members = [visitor_ref]
                if self.tenants.is_feature_enabled(tenant_id, Feature.BOTS):
                    bot = self.bots.resolve_bot(tenant_id, inbox.id)
                    if bot is not None:
                        members.append(
                            ParticipantRef(
                                participant_type=ParticipantType.BOT,
                                participant_id=bot.id,
                            )
                        )
                conversation = self.conversations.create_conversation(
                    tenant_id, inbox.id, members
                )
                logger.info(
                    "Created conversation %s for visitor %s in tenant %s inbox %s",
                    conversation.id,
                    visitor.id,
                    tenant_id,
                    inbox.id,
                )
        result = VisitorChat(conversation=conversation, created=created)
        if message:
            sent = self.send_message(tenant_id, conversation.id, visitor_ref, message)
            result.message = sent.message
            result.bot_reply = sent.bot_reply
        return result

    def start_conversation_with_user(
        self, tenant_id: UUID, user_id: UUID, email: str, inbox_id: UUID
    ) -> PeerConversation:
        if not self.users.has_inbox_access(tenant_id, user_id, inbox_id):
            raise AccessDenied("User does not have access to this inbox")
        target = self.users.get_agent_by_email(tenant_id, email)
        if target is None:
            raise NotFound("User not found")
        if target.id == user_id:
            raise ValidationError("Cannot start a conversation with yourself")
        existing = self.conversations.find_peer_conversation(
            tenant_id, inbox_id, user_id, target.id
        )
        if existing is not None:
            return PeerConversation(conversation=existing, target=target, created=False)
        members = [
            ParticipantRef(participant_type=ParticipantType.USER, participant_id=user_id),
            ParticipantRef(participant_type=ParticipantType.USER, participant_id=target.id),
        ]
        with self._persistence("start_conversation_with_user", tenant_id, None, user_id):
            conversation = self.conversations.create_conversation(tenant_id, inbox_id, members)
        logger.info(
            "Agent %s started conversation %s with agent %s",
            user_id,
            conversation.id,
            target.id,
        )
        return PeerConversation(conversation=conversation, target=target, created=True)

    def assign_agent(
        self, tenant_id: UUID, conversation_id: UUID, actor_id: UUID, agent_id: UUID
    ) -> Conversation:
        """
        Assign an agent and make them a participant.

        Both the acting agent and the assignee need access to the
        conversation's inbox. Assignment is how an agent enters a visitor
        conversation, so the actor does not have to be a participant yet.
        """
        conversation = self.conversations.get_conversation(tenant_id, conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        if not self.users.has_inbox_access(tenant_id, actor_id, conversation.inbox_id):
            raise AccessDenied("User does not have access to this inbox")
        agent = self.users.get_agent(tenant_id, agent_id)
        if agent is None:
            raise NotFound("User not found")
        if not self.users.has_inbox_access(tenant_id, agent_id, conversation.inbox_id):
            raise AccessDenied("Assignee does not have access to this inbox")
        with self._persistence("assign_agent", tenant_id, conversation_id, actor_id):
            self.conversations.ensure_participant(
                tenant_id,
                conversation_id,
                ParticipantRef(participant_type=ParticipantType.USER, participant_id=agent_id),
            )
            conversation = self.conversations.assign(tenant_id, conversation_id, agent_id)
        logger.info("Conversation %s assigned to agent %s", conversation_id, agent_id)
        return conversation
