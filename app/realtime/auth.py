"""Handshake authentication for realtime connections."""

from __future__ import annotations

import logging
from typing import Any, Callable, ContextManager, Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.constants.chat import ParticipantType, PrincipalRole
from app.core.identity import IdentityVerifier, TokenClaims
from app.exceptions import (
    AuthenticationRequired,
    ChatEngineError,
    InvalidCredential,
    NotFound,
    RateLimited,
)
from app.realtime.rate_limit import ConnectionRateLimiter
from app.realtime.session import Principal, RealtimeSession
from app.services.tenant_service import TenantService
from app.services.user_service import UserService
from app.services.visitor_service import VisitorService
from app.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]


def _as_uuid(value: Any) -> UUID:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidCredential() from None


class ConnectionAuthenticator:
    """
    Turns a handshake ``auth`` payload into a RealtimeSession or raises.

    Branches: ``token`` (agent) first, else ``websiteAPIKey`` (widget),
    else AuthenticationRequired. Nothing is attached to a session until
    every check has passed.
    """

    def __init__(
        self,
        identity: IdentityVerifier,
        limiter: ConnectionRateLimiter,
        session_factory: SessionFactory = db_session,
    ) -> None:
        self.identity = identity
        self.limiter = limiter
        self.session_factory = session_factory

    async def authenticate(
        self, sid: str, auth: Optional[Mapping[str, Any]], address: str
    ) -> RealtimeSession:
        """Credential checks touch the store, so they run on the threadpool."""
        if not self.limiter.hit(address):
            self.limiter.warn_once(
                address,
                RateLimited.code,
                "Socket connection rate limited for %s",
                address,
            )
            raise RateLimited()

        auth = auth if isinstance(auth, Mapping) else {}
        token = auth.get("token")
        api_key = auth.get("websiteAPIKey")
        try:
            if token:
                return await run_in_threadpool(self._authenticate_agent, sid, token, address)
            if api_key:
                return await run_in_threadpool(
                    self._authenticate_widget, sid, api_key, auth, address
                )
            raise AuthenticationRequired()
        except ChatEngineError as e:
            self.limiter.warn_once(
                address,
                e.code,
                "Socket connection rejected from %s: %s",
                address,
                e.message,
            )
            raise

    def _authenticate_agent(self, sid: str, token: str, address: str) -> RealtimeSession:
        claims = self.identity.verify_agent(token)
        tenant_id = _as_uuid(claims.tenant_id)
        user_id = _as_uuid(claims.subject)
        with self.session_factory() as db:
            try:
                TenantService(db).get_active_tenant(tenant_id)
            except NotFound:
                raise InvalidCredential() from None
            user = UserService(db).get_agent(tenant_id, user_id)
            if user is None:
                raise InvalidCredential("User not found")
            principal = Principal(
                participant_type=ParticipantType.USER,
                participant_id=str(user.id),
                display_name=user.name,
            )
        logger.info("Agent socket authenticated: %s (tenant=%s sid=%s)", user_id, tenant_id, sid)
        return RealtimeSession(
            sid=sid,
            tenant_id=tenant_id,
            role=PrincipalRole.AGENT,
            principal=principal,
            address=address,
        )

    def _authenticate_widget(
        self, sid: str, api_key: str, auth: Mapping[str, Any], address: str
    ) -> RealtimeSession:
        visitor_token = auth.get("sessionId")
        claims: Optional[TokenClaims] = None
        if visitor_token:
            claims = self.identity.verify_visitor(visitor_token)

        with self.session_factory() as db:
            tenant = TenantService(db).resolve_widget_key(api_key)
            principal = None
            if claims is not None:
                principal = self._visitor_principal(db, tenant.id, claims, auth.get("visitorId"))

        logger.info(
            "Widget socket authenticated (tenant=%s visitor=%s sid=%s)",
            tenant.id,
            principal.participant_id if principal else None,
            sid,
        )
        return RealtimeSession(
            sid=sid,
            tenant_id=tenant.id,
            role=PrincipalRole.VISITOR_WIDGET,
            principal=principal,
            widget_key=api_key,
            address=address,
        )

    @staticmethod
    def _visitor_principal(
        db: Session, tenant_id: UUID, claims: TokenClaims, visitor_id: Any
    ) -> Principal:
        if _as_uuid(claims.tenant_id) != tenant_id:
            raise InvalidCredential("Invalid visitor token")
        subject = _as_uuid(claims.subject)
        if visitor_id and str(visitor_id) != str(subject):
            raise InvalidCredential("Visitor does not match session")
        visitor = VisitorService(db).get_visitor(tenant_id, subject)
        if visitor is None:
            raise InvalidCredential("Visitor not found")
        return Principal(
            participant_type=ParticipantType.VISITOR,
            participant_id=str(visitor.id),
            display_name=visitor.name,
        )
