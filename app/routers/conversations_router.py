"""Agent conversation API. Shares access control with the realtime channel through ChatService."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.constants.chat import ConversationStatus
from app.db import get_db
from app.models import User
from app.realtime.rooms import serialize_message
from app.routers.utils.dependencies import agent_ref, get_current_agent, get_gateway
from app.schemas.chat import (
    ConversationAssign,
    ConversationRead,
    ConversationStartWithUser,
    ConversationStatusUpdate,
    MarkReadResult,
    MessageCreate,
    MessageRead,
    ParticipantRead,
)
from app.services.chat_service import ChatService

router = APIRouter(
    prefix="/conversations",
    tags=["conversations"],
    responses={404: {"description": "Not found"}},
)


@router.get("", response_model=Page[ConversationRead])
def list_conversations(
    status: Optional[ConversationStatus] = None,
    params: Params = Depends(),
    agent: User = Depends(get_current_agent),
    db: Session = Depends(get_db),
) -> Page[ConversationRead]:
    """List the agent's conversations, most recent activity first."""
    query = ChatService(db).conversations_query(agent.tenant_id, agent_ref(agent), status)
    return paginate(query, params=params)


@router.post("", response_model=ConversationRead, status_code=201)
def start_conversation(
    data: ConversationStartWithUser,
    response: Response,
    background_tasks: BackgroundTasks,
    agent: User = Depends(get_current_agent),
    gateway=Depends(get_gateway),
    db: Session = Depends(get_db),
) -> ConversationRead:
    """Start a conversation with another agent, or return the existing one."""
    result = ChatService(db).start_conversation_with_user(
        agent.tenant_id, agent.id, data.email, data.inbox_id
    )
    conversation = ConversationRead.model_validate(result.conversation)
    if not result.created:
        response.status_code = 200
    elif gateway is not None:
        background_tasks.add_task(
            gateway.notify_user,
            result.target.id,
            "conversation_created",
            {
                "conversation": conversation.model_dump(mode="json"),
                "startedBy": {"id": str(agent.id), "name": agent.name},
            },
        )
    return conversation


@router.get("/{conversation_id}", response_model=ConversationRead)
def get_conversation(
    conversation_id: UUID,
    agent: User = Depends(get_current_agent),
    db: Session = Depends(get_db),
) -> ConversationRead:
    return ChatService(db).authorize(agent.tenant_id, conversation_id, agent_ref(agent))


@router.get("/{conversation_id}/participants", response_model=List[ParticipantRead])
def list_participants(
    conversation_id: UUID,
    agent: User = Depends(get_current_agent),
    db: Session = Depends(get_db),
) -> List[ParticipantRead]:
    return ChatService(db).list_participants(
        agent.tenant_id, conversation_id, agent_ref(agent)
    )


@router.get("/{conversation_id}/messages", response_model=Page[MessageRead])
def list_messages(
    conversation_id: UUID,
    params: Params = Depends(),
    agent: User = Depends(get_current_agent),
    db: Session = Depends(get_db),
) -> Page[MessageRead]:
    """Messages oldest first."""
    query = ChatService(db).messages_query(agent.tenant_id, conversation_id, agent_ref(agent))
    return paginate(query, params=params)


@router.post("/{conversation_id}/messages", response_model=MessageRead, status_code=201)
def send_message(
    conversation_id: UUID,
    data: MessageCreate,
    background_tasks: BackgroundTasks,
    agent: User = Depends(get_current_agent),
    gateway=Depends(get_gateway),
    db: Session = Depends(get_db),
) -> MessageRead:
    result = ChatService(db).send_message(
        agent.tenant_id, conversation_id, agent_ref(agent), data.content, data.message_type
    )
    message = serialize_message(result.message)
    if gateway is not None:
        background_tasks.add_task(
            gateway.publish_messages, agent.tenant_id, conversation_id, [message]
        )
    return message


@router.post("/{conversation_id}/read", response_model=MarkReadResult)
def mark_read(
    conversation_id: UUID,
    background_tasks: BackgroundTasks,
    agent: User = Depends(get_current_agent),
    gateway=Depends(get_gateway),
    db: Session = Depends(get_db),
) -> MarkReadResult:
    updated = ChatService(db).mark_read(agent.tenant_id, conversation_id, agent_ref(agent))
    if gateway is not None:
        background_tasks.add_task(
            gateway.messages_read,
            conversation_id,
            {"participantType": "user", "participantId": str(agent.id), "name": agent.name},
            updated,
        )
    return MarkReadResult(conversation_id=conversation_id, updated=updated)


@router.patch("/{conversation_id}/status", response_model=ConversationRead)
def update_status(
    conversation_id: UUID,
    data: ConversationStatusUpdate,
    background_tasks: BackgroundTasks,
    agent: User = Depends(get_current_agent),
    gateway=Depends(get_gateway),
    db: Session = Depends(get_db),
) -> ConversationRead:
    conversation = ChatService(db).update_status(
        agent.tenant_id, conversation_id, agent_ref(agent), data.status
    )
    if gateway is not None:
        background_tasks.add_task(
            gateway.conversation_status_changed, conversation_id, data.status
        )
    return conversation


@router.post("/{conversation_id}/assign", response_model=ConversationRead)
def assign_agent(
    conversation_id: UUID,
    data: ConversationAssign,
    background_tasks: BackgroundTasks,
    agent: User = Depends(get_current_agent),
    gateway=Depends(get_gateway),
    db: Session = Depends(get_db),
) -> ConversationRead:
    """Assign an agent; this stops the bot from replying in the conversation."""
    conversation = ConversationRead.model_validate(
        ChatService(db).assign_agent(agent.tenant_id, conversation_id, agent.id, data.agent_id)
    )
    if gateway is not None:
        background_tasks.add_task(
            gateway.notify_user,
            data.agent_id,
            "conversation_assigned",
            {"conversation": conversation.model_dump(mode="json"), "assignedBy": str(agent.id)},
        )
    return conversation
