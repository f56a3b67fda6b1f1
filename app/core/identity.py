"""Signed token issuance and verification for agents and widget visitors."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import jwt

from app.config import Settings, get_settings
from app.exceptions import InvalidCredential

TOKEN_TYPE_AGENT = "agent"
TOKEN_TYPE_VISITOR = "visitor"


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    tenant_id: str
    token_type: str
    email: Optional[str] = None
    inbox_id: Optional[str] = None


class IdentityVerifier:
    """Stateless: a token string maps to claims or to InvalidCredential."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    def issue_access_token(
        self,
        user_id: UUID | str,
        tenant_id: UUID | str,
        email: str,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        ttl = expires_in or timedelta(minutes=self._settings.jwt_access_expiry_minutes)
        return self._encode(
            {
                "sub": str(user_id),
                "tenant_id": str(tenant_id),
                "email": email,
                "type": TOKEN_TYPE_AGENT,
            },
            ttl,
        )

    def issue_visitor_token(
        self,
        visitor_id: UUID | str,
        tenant_id: UUID | str,
        inbox_id: UUID | str,
        expires_in: Optional[timedelta] = None,
    ) -> str:
        ttl = expires_in or timedelta(days=self._settings.visitor_token_expiry_days)
        return self._encode(
            {
                "sub": str(visitor_id),
                "tenant_id": str(tenant_id),
                "inbox_id": str(inbox_id),
                "type": TOKEN_TYPE_VISITOR,
            },
            ttl,
        )

    def verify(self, token: str) -> TokenClaims:
        if not token or not isinstance(token, str):
            raise InvalidCredential()
        try:
            payload = jwt.decode(
                token,
                self._settings.jwt_access_secret,
                algorithms=[self._settings.jwt_algorithm],
                issuer=self._settings.jwt_issuer,
                audience=self._settings.jwt_audience,
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidCredential() from e
        tenant_id = payload.get("tenant_id")
        if not tenant_id:
            raise InvalidCredential()
        return TokenClaims(
            subject=str(payload["sub"]),
            tenant_id=str(tenant_id),
            token_type=payload.get("type", TOKEN_TYPE_AGENT),
            email=payload.get("email"),
            inbox_id=payload.get("inbox_id"),
        )

    def verify_agent(self, token: str) -> TokenClaims:
        claims = self.verify(token)
        if claims.token_type != TOKEN_TYPE_AGENT:
            raise InvalidCredential()
        return claims

    def verify_visitor(self, token: str) -> TokenClaims:
        claims = self.verify(token)
        if claims.token_type != TOKEN_TYPE_VISITOR:
            raise InvalidCredential("Invalid visitor token")
        return claims

    def _encode(self, claims: Dict[str, Any], ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "iat": now,
            "exp": now + ttl,
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
        }
        return jwt.encode(
            payload,
            self._settings.jwt_access_secret,
            algorithm=self._settings.jwt_algorithm,
        )
