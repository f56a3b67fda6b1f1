"""
Room Router: live conversation rooms and the operations that touch them.

Room membership is in-memory only and mirrors the Socket.IO rooms named
``conversation:{id}``. Authorization always goes to the relational store
through ChatService; the in-memory map is never used to grant access.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, ContextManager, Dict, List, Optional, Protocol, Tuple
from uuid import UUID

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.constants.chat import ConversationStatus, MessageStatus, MessageType
from app.exceptions import AccessDenied
from app.models import Message
from app.realtime.delivery import DeliveryScheduler
from app.realtime.session import Principal, RealtimeSession
from app.schemas.chat import MessageRead, ParticipantRef
from app.services.chat_service import ChatService
from app.services.conversation_service import ConversationService
from app.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]


class Emitter(Protocol):
    """The subset of ``socketio.AsyncServer`` the router relies on."""

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None,
                   room: Optional[str] = None, skip_sid: Optional[str] = None,
                   **kwargs) -> None: ...

    async def enter_room(self, sid: str, room: str, **kwargs) -> None: ...

    async def leave_room(self, sid: str, room: str, **kwargs) -> None: ...


def conversation_room(conversation_id: UUID) -> str:
    return f"conversation:{conversation_id}"


def user_room(user_id: UUID | str) -> str:
    return f"user:{user_id}"


def serialize_message(message: Message) -> Dict[str, Any]:
    return MessageRead.model_validate(message).model_dump(mode="json")


@dataclass
class _RoomLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class RoomRouter:
    def __init__(
        self,
        sio: Emitter,
        delivery: DeliveryScheduler,
        session_factory: SessionFactory = db_session,
    ) -> None:
        self.sio = sio
        self.delivery = delivery
        self.session_factory = session_factory
        self._rooms: Dict[UUID, Dict[str, RealtimeSession]] = {}
        self._locks: Dict[UUID, _RoomLock] = {}

    @asynccontextmanager
    async def _guard(self, conversation_id: UUID) -> AsyncIterator[None]:
        """Serialize work on one conversation. The lock is dropped with its last user."""
        entry = self._locks.get(conversation_id)
        if entry is None:
            entry = self._locks[conversation_id] = _RoomLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[conversation_id]

    # -- queries ------------------------------------------------------------

    def subscribers(self, conversation_id: UUID) -> List[RealtimeSession]:
        return list(self._rooms.get(conversation_id, {}).values())

    def is_subscribed(self, session: RealtimeSession, conversation_id: UUID) -> bool:
        return session.sid in self._rooms.get(conversation_id, {})

    def participants(self, conversation_id: UUID) -> List[Dict[str, Any]]:
        """Live subscribers, one entry per principal however many connections it holds."""
        seen: Dict[tuple, Principal] = {}
        for session in self.subscribers(conversation_id):
            principal = session.principal
            if principal is None:
                continue
            seen.setdefault((principal.participant_type, principal.participant_id), principal)
        return [p.to_dict() for p in seen.values()]

    def get_room_participants(
        self, session: RealtimeSession, conversation_id: UUID
    ) -> List[Dict[str, Any]]:
        """In-memory view only. The caller must be in the room to see it."""
        if not self.is_subscribed(session, conversation_id):
            raise AccessDenied("Join the conversation before listing its participants")
        return self.participants(conversation_id)

    # -- membership ---------------------------------------------------------

    async def join(
        self, session: RealtimeSession, conversation_id: UUID
    ) -> List[Dict[str, Any]]:
        principal = session.require_principal()
        async with self._guard(conversation_id):
            await run_in_threadpool(
                self._authorize, session.tenant_id, conversation_id, principal.ref
            )
            room = self._rooms.setdefault(conversation_id, {})
            rejoin = session.sid in room
            room[session.sid] = session
            session.rooms.add(conversation_id)
            await self.sio.enter_room(session.sid, conversation_room(conversation_id))
            participants = self.participants(conversation_id)
            if not rejoin:
                await self.broadcast(
                    conversation_id,
                    "participant_joined",
                    {"conversationId": str(conversation_id), "participant": principal.to_dict()},
                    skip_sid=session.sid,
                )
        logger.info(
            "Session %s (%s) joined conversation %s",
            session.sid,
            principal.participant_id,
            conversation_id,
        )
        return participants

    async def leave(self, session: RealtimeSession, conversation_id: UUID) -> bool:
        """Idempotent. Returns True when the session was actually in the room."""
        async with self._guard(conversation_id):
            removed = self._discard(session, conversation_id)
            session.rooms.discard(conversation_id)
            await self.sio.leave_room(session.sid, conversation_room(conversation_id))
            if removed and session.principal is not None:
                await self.broadcast(
                    conversation_id,
                    "participant_left",
                    {
                        "conversationId": str(conversation_id),
                        "participant": session.principal.to_dict(),
                    },
                )
        return removed

    async def drop_session(self, session: RealtimeSession) -> List[UUID]:
        """Remove a disconnecting session from every room; returns the rooms it was in."""
        left = []
        for conversation_id in list(session.rooms):
            async with self._guard(conversation_id):
                if self._discard(session, conversation_id):
                    left.append(conversation_id)
            session.rooms.discard(conversation_id)
        return left

    def _discard(self, session: RealtimeSession, conversation_id: UUID) -> bool:
        room = self._rooms.get(conversation_id)
        if room is None or session.sid not in room:
            return False
        del room[session.sid]
        if not room:
            del self._rooms[conversation_id]
        return True

    # -- messaging ----------------------------------------------------------

    async def send_message(
        self,
        session: RealtimeSession,
        conversation_id: UUID,
        content: Any,
        message_type: Any = MessageType.TEXT,
    ) -> Dict[str, Any]:
        principal = session.require_principal()
        async with self._guard(conversation_id):
            message, bot_reply = await run_in_threadpool(
                self._store_message,
                session.tenant_id,
                conversation_id,
                principal.ref,
                content,
                message_type,
            )
            await self.sio.emit(
                "message_sent",
                {"conversationId": str(conversation_id), "message": message},
                to=session.sid,
            )
            await self._publish(session.tenant_id, conversation_id, message)
            if bot_reply is not None:
                await self._publish(session.tenant_id, conversation_id, bot_reply)
        return message

    async def publish_messages(
        self, tenant_id: UUID, conversation_id: UUID, messages: List[Dict[str, Any]]
    ) -> None:
        """Fan out messages persisted outside the realtime path (HTTP sends)."""
        async with self._guard(conversation_id):
            for message in messages:
                await self._publish(tenant_id, conversation_id, message)

    async def _publish(
        self, tenant_id: UUID, conversation_id: UUID, message: Dict[str, Any]
    ) -> None:
        await self.broadcast(
            conversation_id,
            "new_message",
            {"conversationId": str(conversation_id), "message": message},
        )
        message_id = UUID(message["id"])
        self.delivery.schedule(
            conversation_id,
            message_id,
            lambda: self._mark_delivered(tenant_id, conversation_id, message_id),
        )

    async def _mark_delivered(
        self, tenant_id: UUID, conversation_id: UUID, message_id: UUID
    ) -> None:
        advanced = await run_in_threadpool(
            self._store_delivered, tenant_id, message_id
        )
        if advanced:
            await self.broadcast(
                conversation_id,
                "message_status_update",
                {
                    "conversationId": str(conversation_id),
                    "messageId": str(message_id),
                    "status": MessageStatus.DELIVERED.value,
                },
            )

    async def typing(
        self, session: RealtimeSession, conversation_id: UUID, is_typing: bool
    ) -> None:
        principal = session.require_principal()
        if not self.is_subscribed(session, conversation_id):
            raise AccessDenied("Join the conversation before sending typing events")
        await self.broadcast(
            conversation_id,
            "typing_state_changed",
            {
                "conversationId": str(conversation_id),
                "participant": principal.to_dict(),
                "isTyping": is_typing,
            },
            skip_sid=session.sid,
        )

    async def mark_read(self, session: RealtimeSession, conversation_id: UUID) -> int:
        principal = session.require_principal()
        async with self._guard(conversation_id):
            updated = await run_in_threadpool(
                self._store_read, session.tenant_id, conversation_id, principal.ref
            )
            await self.broadcast(
                conversation_id,
                "messages_marked_read",
                {
                    "conversationId": str(conversation_id),
                    "reader": principal.to_dict(),
                    "count": updated,
                },
                skip_sid=session.sid,
            )
        return updated

    async def status_changed(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> None:
        if status == ConversationStatus.CLOSED:
            self.delivery.cancel_conversation(conversation_id)
        await self.broadcast(
            conversation_id,
            "conversation_status_changed",
            {"conversationId": str(conversation_id), "status": ConversationStatus(status).value},
        )

    async def broadcast(
        self,
        conversation_id: UUID,
        event: str,
        data: Dict[str, Any],
        skip_sid: Optional[str] = None,
    ) -> None:
        await self.sio.emit(
            event, data, room=conversation_room(conversation_id), skip_sid=skip_sid
        )

    # -- store access, run on the threadpool --------------------------------

    def _authorize(
        self, tenant_id: UUID, conversation_id: UUID, participant: ParticipantRef
    ) -> None:
        with self.session_factory() as db:
            ChatService(db).authorize(tenant_id, conversation_id, participant)

    def _store_message(
        self,
        tenant_id: UUID,
        conversation_id: UUID,
        sender: ParticipantRef,
        content: Any,
        message_type: Any,
    ) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
        with self.session_factory() as db:
            result = ChatService(db).send_message(
                tenant_id, conversation_id, sender, content, message_type
            )
            message = serialize_message(result.message)
            bot_reply = serialize_message(result.bot_reply) if result.bot_reply else None
        return message, bot_reply

    def _store_read(
        self, tenant_id: UUID, conversation_id: UUID, reader: ParticipantRef
    ) -> int:
        with self.session_factory() as db:
            return ChatService(db).mark_read(tenant_id, conversation_id, reader)

    def _store_delivered(self, tenant_id: UUID, message_id: UUID) -> bool:
        with self.session_factory() as db:
            return ConversationService(db).set_message_status(
                tenant_id, message_id, MessageStatus.DELIVERED
            )
