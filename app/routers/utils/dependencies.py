from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.constants.chat import ParticipantType
from app.core.identity import IdentityVerifier, TokenClaims
from app.db import get_db
from app.exceptions import AuthenticationRequired, InvalidCredential, NotFound
from app.models import Tenant, User
from app.schemas.chat import ParticipantRef
from app.services.tenant_service import TenantService
from app.services.user_service import UserService

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class VisitorContext:
    tenant_id: UUID
    visitor_id: UUID
    inbox_id: Optional[UUID]

    @property
    def ref(self) -> ParticipantRef:
        return ParticipantRef(
            participant_type=ParticipantType.VISITOR, participant_id=self.visitor_id
        )


def agent_ref(user: User) -> ParticipantRef:
    return ParticipantRef(participant_type=ParticipantType.USER, participant_id=user.id)


def _uuid(value) -> UUID:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidCredential() from None


def get_identity_verifier() -> IdentityVerifier:
    """FastAPI dependency for the token verifier."""
    return IdentityVerifier()


def get_gateway(request: Request):
    """The running RealtimeGateway, or None when realtime is not mounted."""
    return getattr(request.app.state, "gateway", None)


def get_current_agent(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: IdentityVerifier = Depends(get_identity_verifier),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency resolving the Bearer token to an agent in an active tenant."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequired()
    claims = identity.verify_agent(credentials.credentials)
    tenant_id = _uuid(claims.tenant_id)
    try:
        TenantService(db).get_active_tenant(tenant_id)
    except NotFound:
        raise InvalidCredential() from None
    user = UserService(db).get_agent(tenant_id, _uuid(claims.subject))
    if user is None:
        raise InvalidCredential("User not found")
    return user


def get_widget_tenant(
    x_website_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Tenant:
    """FastAPI dependency mapping the X-Website-API-Key header to its tenant."""
    if not x_website_api_key:
        raise AuthenticationRequired("API key required")
    return TenantService(db).resolve_widget_key(x_website_api_key)


def get_visitor_context(
    x_visitor_token: Optional[str] = Header(None),
    tenant: Tenant = Depends(get_widget_tenant),
    identity: IdentityVerifier = Depends(get_identity_verifier),
) -> VisitorContext:
    """FastAPI dependency verifying the X-Visitor-Token header against the widget tenant."""
    if not x_visitor_token:
        raise AuthenticationRequired("Visitor token required")
    claims: TokenClaims = identity.verify_visitor(x_visitor_token)
    if _uuid(claims.tenant_id) != tenant.id:
        raise InvalidCredential("Invalid visitor token")
    return VisitorContext(
        tenant_id=tenant.id,
        visitor_id=_uuid(claims.subject),
        inbox_id=_uuid(claims.inbox_id) if claims.inbox_id else None,
    )
