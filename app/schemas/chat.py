"""Pydantic schemas for conversations, participants and messages."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.constants.chat import (
    ConversationStatus,
    MessageStatus,
    MessageType,
    ParticipantType,
)

MAX_MESSAGE_LENGTH = 10_000

# -----------------------------------------------------------------------------
# Participants
# -----------------------------------------------------------------------------


class ParticipantRef(BaseModel):
    """A (type, id) pair; only meaningful attached to a conversation."""

    participant_type: ParticipantType
    participant_id: str

    model_config = ConfigDict(frozen=True)

    @field_validator("participant_id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v) if isinstance(v, UUID) else v


class ParticipantRead(ParticipantRef):
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


# -----------------------------------------------------------------------------
# Conversations
# -----------------------------------------------------------------------------


class ConversationRead(BaseModel):
    id: UUID
    tenant_id: UUID
    inbox_id: UUID
    status: ConversationStatus
    assigned_user_id: Optional[UUID] = None
    last_message_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationStartWithUser(BaseModel):
    """Agent starts (or reopens) a peer conversation with another agent."""

    email: str = Field(..., min_length=3, max_length=255)
    inbox_id: UUID


class ConversationStatusUpdate(BaseModel):
    status: ConversationStatus


class ConversationAssign(BaseModel):
    agent_id: UUID


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    message_type: MessageType = MessageType.TEXT

    @field_validator("content")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message content is required")
        return v


class MessageRead(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_type: ParticipantType
    sender_id: str
    content: str
    message_type: MessageType
    status: MessageStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkReadResult(BaseModel):
    conversation_id: UUID
    updated: int


# -----------------------------------------------------------------------------
# Widget / visitor
# -----------------------------------------------------------------------------


class VisitorInit(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=255)
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    user_agent: Optional[str] = None
    referrer_url: Optional[str] = None
    inbox_id: Optional[UUID] = None


class VisitorRead(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    session_id: str
    status: str

    model_config = ConfigDict(from_attributes=True)


class VisitorSession(BaseModel):
    visitor: VisitorRead
    tenant_id: UUID
    inbox_id: UUID
    visitor_token: str


class ChatStart(BaseModel):
    message: Optional[str] = Field(None, max_length=MAX_MESSAGE_LENGTH)


class ChatStartResult(BaseModel):
    conversation_id: UUID
    created: bool
    message: Optional[MessageRead] = None
    bot_reply: Optional[MessageRead] = None


class ChatMessages(BaseModel):
    conversation_id: UUID
    messages: list[MessageRead]
