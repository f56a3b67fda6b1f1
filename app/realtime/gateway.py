"""
Socket.IO gateway: wires the Socket.IO server to the realtime components.

Handlers run with ``async_handlers=False`` so that the events of one
connection are processed in arrival order.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
from uuid import UUID

import socketio

from app.config import Settings, get_settings
from app.constants.chat import ConversationStatus
from app.core.identity import IdentityVerifier
from app.exceptions import (
    AuthenticationRequired,
    ChatEngineError,
    InternalFailure,
    ValidationError,
)
from app.realtime.auth import ConnectionAuthenticator, SessionFactory
from app.realtime.delivery import DeliveryScheduler
from app.realtime.presence import PresenceTracker
from app.realtime.rate_limit import ConnectionRateLimiter
from app.realtime.rooms import RoomRouter, user_room
from app.realtime.session import RealtimeSession
from app.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)

Operation = Callable[[RealtimeSession, UUID, Any], Awaitable[Dict[str, Any]]]


def client_address(environ: Mapping[str, Any], trust_forwarded: bool = False) -> str:
    """
    Address the abuse gate keys on: the transport peer.

    ``X-Forwarded-For`` is client supplied, so it is only honoured when the
    service runs behind a proxy that overwrites it.
    """
    if trust_forwarded:
        forwarded = environ.get("HTTP_X_FORWARDED_FOR")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if environ.get("REMOTE_ADDR"):
        return environ["REMOTE_ADDR"]
    client = (environ.get("asgi.scope") or {}).get("client")
    if client:
        return str(client[0])
    return "unknown"


def parse_conversation_id(data: Any) -> UUID:
    raw = data.get("conversationId") if isinstance(data, Mapping) else data
    try:
        return UUID(str(raw))
    except (TypeError, ValueError):
        raise ValidationError("A valid conversationId is required") from None


class RealtimeGateway:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        sio: Optional[socketio.AsyncServer] = None,
        identity: Optional[IdentityVerifier] = None,
        session_factory: SessionFactory = db_session,
    ) -> None:
        settings = settings or get_settings()
        self.trust_forwarded = settings.trust_forwarded_for
        self.sio = sio or socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=settings.cors_origins,
            async_handlers=False,
            logger=False,
            engineio_logger=False,
        )
        self.identity = identity or IdentityVerifier(settings)
        self.limiter = ConnectionRateLimiter(
            window_seconds=settings.connection_rate_limit_window_seconds,
            max_attempts=settings.connection_rate_limit_max_attempts,
        )
        self.authenticator = ConnectionAuthenticator(
            self.identity, self.limiter, session_factory
        )
        self.delivery = DeliveryScheduler(settings.message_delivered_delay_ms / 1000)
        self.router = RoomRouter(self.sio, self.delivery, session_factory)
        self.presence = PresenceTracker(self.router, session_factory)
        self.sessions: Dict[str, RealtimeSession] = {}
        self._register()

    def _register(self) -> None:
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        operations: Dict[str, Operation] = {
            "join_conversation": self.on_join,
            "leave_conversation": self.on_leave,
            "send_message": self.on_send_message,
            "typing_start": self.on_typing_start,
            "typing_stop": self.on_typing_stop,
            "mark_messages_read": self.on_mark_read,
            "get_room_participants": self.on_get_room_participants,
        }
        for event, operation in operations.items():
            self.sio.on(event, self.operation(event, operation))

    # -- connection lifecycle -----------------------------------------------

    async def on_connect(self, sid: str, environ: Mapping[str, Any], auth: Any = None) -> None:
        address = client_address(environ, self.trust_forwarded)
        try:
            session = await self.authenticator.authenticate(sid, auth, address)
        except ChatEngineError as e:
            raise socketio.exceptions.ConnectionRefusedError(e.message, e.to_dict())
        except Exception:
            logger.exception("Error during socket authentication from %s", address)
            failure = InternalFailure()
            raise socketio.exceptions.ConnectionRefusedError(failure.message, failure.to_dict())

        self.sessions[sid] = session
        if session.is_agent:
            await self.sio.enter_room(sid, user_room(session.principal.participant_id))
        if session.principal is not None:
            try:
                await self.presence.connected(session)
            except Exception:
                logger.exception("Failed to mark %s online", session.principal.participant_id)

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        session = self.sessions.pop(sid, None)
        if session is None:
            return
        try:
            await self.presence.disconnected(session)
        except Exception:
            logger.exception("Presence update failed on disconnect: %s", session.to_dict())
        logger.debug("Session %s disconnected (%s)", sid, reason)

    # -- room operations ----------------------------------------------------

    def operation(self, event: str, fn: Operation) -> Callable[..., Awaitable[Dict[str, Any]]]:
        """Wrap a room operation so failures go back to the caller as an ``error`` event."""

        async def handler(sid: str, data: Any = None) -> Dict[str, Any]:
            conversation_id: Optional[UUID] = None
            try:
                session = self.sessions.get(sid)
                if session is None:
                    raise AuthenticationRequired()
                conversation_id = parse_conversation_id(data)
                result = await fn(session, conversation_id, data)
                return {"ok": True, **result}
            except ChatEngineError as e:
                error = e
            except Exception:
                logger.exception(
                    "Unhandled error in %s (sid=%s conversation=%s)",
                    event,
                    sid,
                    conversation_id,
                )
                error = InternalFailure()
            await self.sio.emit(
                "error",
                {
                    "event": event,
                    "code": error.code,
                    "message": error.message,
                    "conversationId": str(conversation_id) if conversation_id else None,
                },
                to=sid,
            )
            return {"ok": False, **error.to_dict()}

        return handler

    async def on_join(self, session: RealtimeSession, conversation_id: UUID, data: Any) -> Dict[str, Any]:
        participants = await self.router.join(session, conversation_id)
        await self._send_participants(session, conversation_id, participants)
        return {"conversationId": str(conversation_id), "participants": participants}

    async def on_leave(self, session: RealtimeSession, conversation_id: UUID, data: Any) -> Dict[str, Any]:
        await self.router.leave(session, conversation_id)
        return {"conversationId": str(conversation_id)}

    async def on_send_message(self, session: RealtimeSession, conversation_id: UUID, data: Any) -> Dict[str, Any]:
        if not isinstance(data, Mapping):
            raise ValidationError("Message payload must be an object")
        message = await self.router.send_message(
            session,
            conversation_id,
            data.get("content"),
            data.get("messageType") or "text",
        )
        return {"conversationId": str(conversation_id), "message": message}

    async def on_typing_start(self, session: RealtimeSession, conversation_id: UUID, data: Any) -> Dict[str, Any]:
        await self.router.typing(session, conversation_id, True)
        return {"conversationId": str(conversation_id)}

    async def on_typing_stop(self, session: RealtimeSession, conversation_id: UUID, data: Any) -> Dict[str, Any]:
        await self.router.typing(session, conversation_id, False)
        return {"conversationId": str(conversation_id)}

    async def on_mark_read(self, session: RealtimeSession, conversation_id: UUID, data: Any) -> Dict[str, Any]:
        count = await self.router.mark_read(session, conversation_id)
        return {"conversationId": str(conversation_id), "count": count}

    async def on_get_room_participants(self, session: RealtimeSession, conversation_id: UUID, data: Any) -> Dict[str, Any]:
        participants = self.router.get_room_participants(session, conversation_id)
        await self._send_participants(session, conversation_id, participants)
        return {"conversationId": str(conversation_id), "participants": participants}

    async def _send_participants(
        self, session: RealtimeSession, conversation_id: UUID, participants: List[Dict[str, Any]]
    ) -> None:
        await self.sio.emit(
            "room_participants",
            {"conversationId": str(conversation_id), "participants": participants},
            to=session.sid,
        )

    # -- hooks for the HTTP transport ---------------------------------------

    async def publish_messages(
        self, tenant_id: UUID, conversation_id: UUID, messages: List[Dict[str, Any]]
    ) -> None:
        await self.router.publish_messages(tenant_id, conversation_id, messages)

    async def conversation_status_changed(
        self, conversation_id: UUID, status: ConversationStatus
    ) -> None:
        await self.router.status_changed(conversation_id, status)

    async def messages_read(
        self, conversation_id: UUID, reader: Dict[str, Any], count: int
    ) -> None:
        await self.router.broadcast(
            conversation_id,
            "messages_marked_read",
            {"conversationId": str(conversation_id), "reader": reader, "count": count},
        )

    async def notify_user(self, user_id: UUID | str, event: str, data: Dict[str, Any]) -> None:
        await self.sio.emit(event, data, room=user_room(user_id))

    async def shutdown(self) -> None:
        await self.delivery.shutdown()
        logger.info("Realtime gateway stopped")
