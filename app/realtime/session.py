"""Ephemeral per-connection state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from uuid import UUID

from app.constants.chat import ParticipantType, PrincipalRole
from app.exceptions import AccessDenied
from app.schemas.chat import ParticipantRef


@dataclass(frozen=True)
class Principal:
    """The identity behind a connection; several connections may share one."""

    participant_type: ParticipantType
    participant_id: str
    display_name: str

    @property
    def ref(self) -> ParticipantRef:
        return ParticipantRef(
            participant_type=self.participant_type,
            participant_id=self.participant_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "participantType": self.participant_type.value,
            "participantId": self.participant_id,
            "name": self.display_name,
        }


@dataclass
class RealtimeSession:
    sid: str
    tenant_id: UUID
    role: PrincipalRole
    principal: Optional[Principal] = None
    widget_key: Optional[str] = None
    address: Optional[str] = None
    rooms: Set[UUID] = field(default_factory=set)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_agent(self) -> bool:
        return self.role == PrincipalRole.AGENT

    def require_principal(self) -> Principal:
        if self.principal is None:
            raise AccessDenied("Connection has no participant identity")
        return self.principal

    def to_dict(self) -> Dict[str, Any]:
        """Summary for logging."""
        return {
            "sid": self.sid,
            "tenant_id": str(self.tenant_id),
            "role": self.role.value,
            "principal": self.principal.participant_id if self.principal else None,
            "rooms": sorted(str(r) for r in self.rooms),
        }
