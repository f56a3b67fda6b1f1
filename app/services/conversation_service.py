"""
Conversation store: conversations, membership and messages.

Every query filters on tenant_id. Membership is append-only and message
status only moves forward.
"""

from __future__ import annotations

from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, not_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from app.constants.chat import (
    ConversationStatus,
    MessageStatus,
    MessageType,
    ParticipantType,
)
from app.exceptions import NotFound
from app.models import Conversation, ConversationParticipant, Message
from app.models.mixins import utcnow
from app.schemas.chat import ParticipantRef


class AssignmentChanged(Exception):
    """Raised by a guarded append when a human agent was assigned meanwhile."""


class ConversationService:
    def __init__(self, db: Session) -> None:
        self.db = db

    # -- conversations ------------------------------------------------------

    def get_conversation(
        self, tenant_id: UUID, conversation_id: UUID
    ) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.id == conversation_id,
                Conversation.tenant_id == tenant_id,
            )
            .first()
        )

    def create_conversation(
        self,
        tenant_id: UUID,
        inbox_id: UUID,
        participants: Iterable[ParticipantRef],
        assigned_user_id: Optional[UUID] = None,
    ) -> Conversation:
        """Create one conversation and one membership row per distinct participant."""
        members = list(dict.fromkeys(participants))
        if not members:
            raise ValueError("A conversation needs at least one participant")
        conversation = Conversation(
            tenant_id=tenant_id,
            inbox_id=inbox_id,
            status=ConversationStatus.OPEN.value,
            assigned_user_id=assigned_user_id,
        )
        self.db.add(conversation)
        self.db.flush()
        for ref in members:
            self.db.add(
                ConversationParticipant(
                    tenant_id=tenant_id,
                    conversation_id=conversation.id,
                    participant_type=ref.participant_type.value,
                    participant_id=ref.participant_id,
                )
            )
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def update_status(
        self, tenant_id: UUID, conversation_id: UUID, status: ConversationStatus
    ) -> Conversation:
        conversation = self.get_conversation(tenant_id, conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        conversation.status = ConversationStatus(status).value
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def assign(
        self, tenant_id: UUID, conversation_id: UUID, user_id: Optional[UUID]
    ) -> Conversation:
        conversation = self.get_conversation(tenant_id, conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        conversation.assigned_user_id = user_id
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def find_open_visitor_conversation(
        self, tenant_id: UUID, inbox_id: UUID, visitor_id: UUID | str
    ) -> Optional[Conversation]:
        return (
            self._member_conversations(
                tenant_id, ParticipantRef(participant_type=ParticipantType.VISITOR, participant_id=visitor_id)
            )
            .filter(
                Conversation.inbox_id == inbox_id,
                Conversation.status == ConversationStatus.OPEN.value,
            )
            .order_by(Conversation.created_at.desc())
            .first()
        )

    def find_peer_conversation(
        self, tenant_id: UUID, inbox_id: UUID, user_a: UUID, user_b: UUID
    ) -> Optional[Conversation]:
        """Existing conversation in the inbox that has both agents as members."""
        other = (
            self.db.query(ConversationParticipant.conversation_id)
            .filter(
                ConversationParticipant.tenant_id == tenant_id,
                ConversationParticipant.participant_type == ParticipantType.USER.value,
                ConversationParticipant.participant_id == str(user_b),
            )
        )
        return (
            self._member_conversations(
                tenant_id, ParticipantRef(participant_type=ParticipantType.USER, participant_id=user_a)
            )
            .filter(
                Conversation.inbox_id == inbox_id,
                Conversation.id.in_(other),
            )
            .order_by(Conversation.created_at.desc())
            .first()
        )

    def get_conversations_query(
        self,
        tenant_id: UUID,
        participant: ParticipantRef,
        status: Optional[ConversationStatus] = None,
    ) -> Query:
        """Conversations the participant belongs to, newest activity first (for pagination)."""
        query = self._member_conversations(tenant_id, participant)
        if status is not None:
            query = query.filter(Conversation.status == ConversationStatus(status).value)
        return query.order_by(
            Conversation.last_message_at.desc(), Conversation.created_at.desc()
        )

    def list_conversations(
        self,
        tenant_id: UUID,
        participant: ParticipantRef,
        status: Optional[ConversationStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Conversation]:
        return (
            self.get_conversations_query(tenant_id, participant, status)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def _member_conversations(self, tenant_id: UUID, participant: ParticipantRef) -> Query:
        return (
            self.db.query(Conversation)
            .join(
                ConversationParticipant,
                and_(
                    ConversationParticipant.conversation_id == Conversation.id,
                    ConversationParticipant.tenant_id == Conversation.tenant_id,
                ),
            )
            .filter(
                Conversation.tenant_id == tenant_id,
                ConversationParticipant.participant_type == participant.participant_type.value,
                ConversationParticipant.participant_id == participant.participant_id,
            )
        )

    # -- membership ---------------------------------------------------------

    def is_participant(
        self, tenant_id: UUID, conversation_id: UUID, participant: ParticipantRef
    ) -> bool:
        return (
            self.db.query(ConversationParticipant.id)
            .filter(
                ConversationParticipant.tenant_id == tenant_id,
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.participant_type == participant.participant_type.value,
                ConversationParticipant.participant_id == participant.participant_id,
            )
            .first()
            is not None
        )

    def ensure_participant(
        self, tenant_id: UUID, conversation_id: UUID, participant: ParticipantRef
    ) -> bool:
        """Add a member unless present. Returns True when a row was inserted."""
        if self.is_participant(tenant_id, conversation_id, participant):
            return False
        self.db.add(
            ConversationParticipant(
                tenant_id=tenant_id,
                conversation_id=conversation_id,
                participant_type=participant.participant_type.value,
                participant_id=participant.participant_id,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            # Lost an insert race; the unique constraint kept a single row.
            self.db.rollback()
            return False
        return True

    def list_participants(
        self, tenant_id: UUID, conversation_id: UUID
    ) -> List[ConversationParticipant]:
        return (
            self.db.query(ConversationParticipant)
            .filter(
                ConversationParticipant.tenant_id == tenant_id,
                ConversationParticipant.conversation_id == conversation_id,
            )
            .order_by(ConversationParticipant.joined_at)
            .all()
        )

    # -- messages -----------------------------------------------------------

    def append_message(
        self,
        tenant_id: UUID,
        conversation_id: UUID,
        sender: ParticipantRef,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        require_unassigned: bool = False,
    ) -> Message:
        """
        Persist a message with status ``sent`` and bump last_message_at.

        With ``require_unassigned`` the conversation row is locked and the
        append is refused with AssignmentChanged if an agent is assigned.
        """
        query = self.db.query(Conversation).filter(
            Conversation.id == conversation_id,
            Conversation.tenant_id == tenant_id,
        )
        if require_unassigned:
            query = query.with_for_update().populate_existing()
        conversation = query.first()
        if conversation is None:
            raise NotFound("Conversation not found")
        if require_unassigned and conversation.assigned_user_id is not None:
            self.db.rollback()
            raise AssignmentChanged()

        now = utcnow()
        message = Message(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            sender_type=sender.participant_type.value,
            sender_id=sender.participant_id,
            content=content,
            message_type=MessageType(message_type).value,
            status=MessageStatus.SENT.value,
            created_at=now,
        )
        self.db.add(message)
        conversation.last_message_at = now
        self.db.commit()
        self.db.refresh(message)
        return message

    def get_message(self, tenant_id: UUID, message_id: UUID) -> Optional[Message]:
        return (
            self.db.query(Message)
            .filter(Message.id == message_id, Message.tenant_id == tenant_id)
            .first()
        )

    def set_message_status(
        self, tenant_id: UUID, message_id: UUID, status: MessageStatus
    ) -> bool:
        """Advance a message's status. Returns False when it is already at or past it."""
        status = MessageStatus(status)
        updated = (
            self.db.query(Message)
            .filter(
                Message.id == message_id,
                Message.tenant_id == tenant_id,
                Message.status.in_([s.value for s in status.lower_statuses()]),
            )
            .update({Message.status: status.value}, synchronize_session=False)
        )
        self.db.commit()
        return updated > 0

    def mark_read(
        self, tenant_id: UUID, conversation_id: UUID, reader: ParticipantRef
    ) -> int:
        """Mark every unread message not sent by ``reader`` as read."""
        own = and_(
            Message.sender_type == reader.participant_type.value,
            Message.sender_id == reader.participant_id,
        )
        updated = (
            self.db.query(Message)
            .filter(
                Message.tenant_id == tenant_id,
                Message.conversation_id == conversation_id,
                Message.status.in_(
                    [s.value for s in MessageStatus.READ.lower_statuses()]
                ),
                not_(own),
            )
            .update({Message.status: MessageStatus.READ.value}, synchronize_session=False)
        )
        self.db.commit()
        return updated

    def get_messages_query(self, tenant_id: UUID, conversation_id: UUID) -> Query:
        """Messages oldest first (for pagination)."""
        return (
            self.db.query(Message)
            .filter(
                Message.tenant_id == tenant_id,
                Message.conversation_id == conversation_id,
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
        )

    def list_messages(
        self, tenant_id: UUID, conversation_id: UUID, skip: int = 0, limit: int = 100
    ) -> List[Message]:
        return (
            self.get_messages_query(tenant_id, conversation_id)
            .offset(skip)
            .limit(limit)
            .all()
        )
