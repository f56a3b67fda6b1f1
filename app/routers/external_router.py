"""Widget-facing API: visitor sessions and visitor chats."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.orm import Session

from app.core.identity import IdentityVerifier
from app.db import get_db
from app.exceptions import NotFound
from app.infra.logging_config import get_logger
from app.models import Tenant
from app.realtime.rooms import serialize_message
from app.routers.utils.dependencies import (
    VisitorContext,
    get_gateway,
    get_identity_verifier,
    get_visitor_context,
    get_widget_tenant,
)
from app.schemas.chat import (
    ChatMessages,
    ChatStart,
    ChatStartResult,
    MessageRead,
    VisitorInit,
    VisitorRead,
    VisitorSession,
)
from app.services.chat_service import ChatService
from app.services.tenant_service import TenantService
from app.services.visitor_service import VisitorService

logger = get_logger("external")

router = APIRouter(
    prefix="/external",
    tags=["external"],
    responses={404: {"description": "Not found"}},
)


@router.post("/visitor/init", response_model=VisitorSession, status_code=201)
def initialize_visitor(
    data: VisitorInit,
    request: Request,
    tenant: Tenant = Depends(get_widget_tenant),
    identity: IdentityVerifier = Depends(get_identity_verifier),
    db: Session = Depends(get_db),
) -> VisitorSession:
    """Create a visitor and hand back the signed visitor token the widget connects with."""
    inbox = TenantService(db).resolve_inbox(tenant.id, data.inbox_id)
    ip_address = request.client.host if request.client else None
    visitor = VisitorService(db).initialize_visitor_session(tenant.id, data, ip_address)
    token = identity.issue_visitor_token(visitor.id, tenant.id, inbox.id)
    logger.info(
        "Visitor session initialized: %s for tenant: %s, inbox: %s",
        visitor.id,
        tenant.id,
        inbox.id,
    )
    return VisitorSession(
        visitor=VisitorRead.model_validate(visitor),
        tenant_id=tenant.id,
        inbox_id=inbox.id,
        visitor_token=token,
    )


@router.post("/chat/start", response_model=ChatStartResult, status_code=201)
def start_chat(
    data: ChatStart,
    response: Response,
    background_tasks: BackgroundTasks,
    visitor: VisitorContext = Depends(get_visitor_context),
    gateway=Depends(get_gateway),
    db: Session = Depends(get_db),
) -> ChatStartResult:
    """Find or create the visitor's open conversation and optionally post a first message."""
    chat = ChatService(db).start_visitor_chat(
        visitor.tenant_id, visitor.visitor_id, visitor.inbox_id, data.message
    )
    messages = [serialize_message(m) for m in (chat.message, chat.bot_reply) if m is not None]
    if not chat.created:
        response.status_code = 200
    if messages and gateway is not None:
        background_tasks.add_task(
            gateway.publish_messages, visitor.tenant_id, chat.conversation.id, messages
        )
    return ChatStartResult(
        conversation_id=chat.conversation.id,
        created=chat.created,
        message=MessageRead.model_validate(messages[0]) if chat.message else None,
        bot_reply=MessageRead.model_validate(messages[-1]) if chat.bot_reply else None,
    )


@router.get("/chat/messages", response_model=ChatMessages)
def get_chat_messages(
    conversation_id: Optional[UUID] = None,
    visitor: VisitorContext = Depends(get_visitor_context),
    db: Session = Depends(get_db),
) -> ChatMessages:
    """Messages of the given conversation, or of the visitor's open one in their inbox."""
    svc = ChatService(db)
    if conversation_id is None:
        inbox = svc.tenants.resolve_inbox(visitor.tenant_id, visitor.inbox_id)
        conversation = svc.conversations.find_open_visitor_conversation(
            visitor.tenant_id, inbox.id, visitor.visitor_id
        )
        if conversation is None:
            raise NotFound("No open conversation")
        conversation_id = conversation.id
    messages = svc.list_messages(
        visitor.tenant_id, conversation_id, visitor.ref, limit=500
    )
    return ChatMessages(
        conversation_id=conversation_id,
        messages=[MessageRead.model_validate(m) for m in messages],
    )
