"""Online/offline tracking driven by connect and disconnect."""

from __future__ import annotations

import logging
from typing import Callable, ContextManager, Dict, List, Tuple
from uuid import UUID

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.realtime.rooms import RoomRouter
from app.realtime.session import RealtimeSession
from app.services.user_service import UserService
from app.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)

PrincipalKey = Tuple[UUID, str, str]


class PresenceTracker:
    """
    Counts live connections per principal.

    An agent's online flag is written when its first connection opens and
    cleared only when its last one closes. There is no debouncing, so a
    flapping single connection still produces repeated writes.

    On disconnect each room the connection was in hears about it unless
    another connection of the same principal is still subscribed there:
    ``participant_offline`` when that was the principal's last connection,
    ``participant_left`` otherwise.
    """

    def __init__(
        self,
        router: RoomRouter,
        session_factory: Callable[[], ContextManager[Session]] = db_session,
    ) -> None:
        self.router = router
        self.session_factory = session_factory
        self._connections: Dict[PrincipalKey, int] = {}

    @staticmethod
    def _key(session: RealtimeSession) -> PrincipalKey:
        principal = session.require_principal()
        return (session.tenant_id, principal.participant_type, principal.participant_id)

    def connections(self, session: RealtimeSession) -> int:
        """Live connections held by the session's principal."""
        if session.principal is None:
            return 0
        return self._connections.get(self._key(session), 0)

    def _persist(self, session: RealtimeSession, is_online: bool) -> None:
        if not session.is_agent or session.principal is None:
            return
        with self.session_factory() as db:
            UserService(db).set_online_status(
                session.tenant_id, UUID(session.principal.participant_id), is_online
            )
        logger.info(
            "Agent %s is %s (tenant=%s)",
            session.principal.participant_id,
            "online" if is_online else "offline",
            session.tenant_id,
        )

    async def connected(self, session: RealtimeSession) -> None:
        if session.principal is None:
            return
        key = self._key(session)
        self._connections[key] = self._connections.get(key, 0) + 1
        await run_in_threadpool(self._persist, session, True)

    async def disconnected(self, session: RealtimeSession) -> List[UUID]:
        rooms = await self.router.drop_session(session)
        if session.principal is None:
            return rooms

        key = self._key(session)
        remaining = max(self._connections.get(key, 0) - 1, 0)
        if remaining:
            self._connections[key] = remaining
        else:
            self._connections.pop(key, None)

        try:
            if not remaining:
                await run_in_threadpool(self._persist, session, False)
        finally:
            event = "participant_left" if remaining else "participant_offline"
            for conversation_id in rooms:
                if self._still_in_room(session, conversation_id):
                    continue
                await self.router.broadcast(
                    conversation_id,
                    event,
                    {
                        "conversationId": str(conversation_id),
                        "participant": session.principal.to_dict(),
                    },
                )
        return rooms

    def _still_in_room(self, session: RealtimeSession, conversation_id: UUID) -> bool:
        principal = session.principal
        return any(
            other.principal is not None
            and other.principal.participant_type == principal.participant_type
            and other.principal.participant_id == principal.participant_id
            for other in self.router.subscribers(conversation_id)
        )
