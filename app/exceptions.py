"""Error taxonomy shared by the HTTP and realtime transports."""

from __future__ import annotations

from typing import Any, Dict


class ChatEngineError(Exception):
    """Base error. ``code`` is stable and machine readable."""

    code = "internal_failure"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class AuthenticationRequired(ChatEngineError):
    code = "authentication_required"
    status_code = 401
    default_message = "Authentication required"


class InvalidCredential(ChatEngineError):
    code = "invalid_credential"
    status_code = 401
    default_message = "Invalid authentication token"


class TenantInactive(ChatEngineError):
    code = "tenant_inactive"
    status_code = 403
    default_message = "Tenant is not active"


class AccessDenied(ChatEngineError):
    code = "access_denied"
    status_code = 403
    default_message = "Access denied to this conversation"


class NotFound(ChatEngineError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class ValidationError(ChatEngineError):
    code = "validation_error"
    status_code = 422
    default_message = "Invalid input"


class InternalFailure(ChatEngineError):
    pass


class RateLimited(ChatEngineError):
    code = "rate_limited"
    status_code = 429
    default_message = "Too many connection attempts. Please try again later."
