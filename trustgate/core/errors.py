"""Error Hierarchy — typed, categorized exceptions for every TrustGate failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - AuthError renders the same generic 401 body for every AuthFailure reason
    - Domain errors (400-level) are recoverable; infrastructure errors (503) are retryable
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with TrustGateError base: FastAPI global handler catches all (ADR: uniform error shape)
    - AuthFailure reason kept on the exception for logs only: distinguishing reasons
      to the caller would turn the verifier into an oracle
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    DATABASE = "database"
    CACHE = "cache"
    INTERNAL = "internal"


class AuthFailure(str, Enum):
    """Why a credential was refused. Logged, never returned to the caller."""
    NO_TOKEN = "no_token"
    DECODE_FAILED = "decode_failed"
    UNEXPECTED_ALGORITHM = "unexpected_algorithm"
    UNEXPECTED_KEY_ID = "unexpected_key_id"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    BAD_SIGNATURE = "bad_signature"
    CLAIM_MISMATCH = "claim_mismatch"
    NO_SUBJECT = "no_subject"
    TOKEN_REVOKED = "token_revoked"
    PRINCIPAL_NOT_FOUND = "principal_not_found"
    BAD_CREDENTIALS = "bad_credentials"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    principal_id: str | None = None
    channel_id: str | None = None
    owner_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class TrustGateError(Exception):
    """Base exception for all TrustGate errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "channel_id": self.context.channel_id,
                    "owner_id": self.context.owner_id,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }

    def to_ws_event(self) -> dict:
        """Convert to a real-time error frame."""
        return {
            "event": "error",
            "data": {
                "code": self.code,
                "message": self.message,
                "retryable": self.category in (
                    ErrorCategory.CONFLICT, ErrorCategory.RATE_LIMIT,
                    ErrorCategory.DATABASE, ErrorCategory.CACHE,
                ),
            },
        }


# ─── Startup ─────────────────────────────────────────────────────

class ConfigError(TrustGateError):
    """Signing or verification material is missing or unusable."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFIG_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )


# ─── Authentication (401) ────────────────────────────────────────

class AuthError(TrustGateError):
    """Credential refused. The reason never leaves the process."""
    def __init__(self, reason: AuthFailure, context: ErrorContext | None = None):
        super().__init__(
            "Unauthorized", "UNAUTHORIZED", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )
        self.reason = reason

    def to_response(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
            }
        }

    def to_ws_event(self) -> dict:
        return {"event": "error", "data": {"code": self.code, "message": self.message}}


# ─── Domain Errors (400-level) ───────────────────────────────────

class PayloadValidationError(TrustGateError):
    """Request payload is malformed."""
    def __init__(
        self, message: str, field: str, context: ErrorContext | None = None,
        code: str = "VALIDATION_ERROR",
    ):
        super().__init__(
            message, code, ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field

    def to_response(self) -> dict:
        body = super().to_response()
        body["error"]["details"] = [{"field": self.field, "message": self.message}]
        return body


class BadChannelIdError(PayloadValidationError):
    """Channel identifier is not a canonical UUID string."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "chatId must be a canonical UUID string", "chatId",
            context, code="BAD_CHANNEL_ID",
        )


class ForbiddenError(TrustGateError):
    """Authorization policy denied the request."""
    def __init__(self, message: str = "Forbidden", context: ErrorContext | None = None):
        super().__init__(
            message, "FORBIDDEN", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class ResourceNotFoundError(TrustGateError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class NoPreKeysAvailableError(TrustGateError):
    """Every one-time prekey of the bundle has been consumed."""
    def __init__(self, owner_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.owner_id = owner_id
        super().__init__(
            "No one-time prekeys available", "NO_PREKEYS",
            ErrorCategory.RESOURCE_EXHAUSTED, ErrorSeverity.WARNING, ctx, 410,
        )


class ConflictError(TrustGateError):
    """Lost a race on a conditional write. Safe to retry."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class ReplayDetectedError(TrustGateError):
    """Ciphertext was already accepted for this channel within the replay window."""
    def __init__(self, channel_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.channel_id = channel_id
        super().__init__(
            "Duplicate ciphertext rejected", "REPLAY_DETECTED",
            ErrorCategory.CONFLICT, ErrorSeverity.WARNING, ctx, 409,
        )


class PrincipalExistsError(TrustGateError):
    """Registration collided with an existing username or email."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Principal already exists", "PRINCIPAL_EXISTS",
            ErrorCategory.CONFLICT, ErrorSeverity.ERROR, context, 409,
        )


class RateLimitedError(TrustGateError):
    """Too many attempts inside the sliding window."""
    def __init__(self, retry_after_ms: int | None = None, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            "Too many attempts", "RATE_LIMITED", ErrorCategory.RATE_LIMIT,
            ErrorSeverity.WARNING, ctx, 429,
        )


class ConnectionClosedError(TrustGateError):
    """Work finished after its connection went away and must be discarded."""
    def __init__(self, connection_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"Connection {connection_id} is closed", "CONNECTION_CLOSED",
            ErrorCategory.INTERNAL, ErrorSeverity.INFO, context, 410,
        )


# ─── Infrastructure Errors (503) ─────────────────────────────────

class InfrastructureError(TrustGateError):
    """Store or cache unavailable. Retryable."""
    def __init__(
        self, message: str, code: str, category: ErrorCategory,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, category, ErrorSeverity.CRITICAL, context, 503,
        )


class DatabaseError(InfrastructureError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE, context,
        )
        self.operation = operation


class CacheUnavailableError(InfrastructureError):
    """Shared cache could not be reached."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Cache unavailable: {message}",
            "CACHE_UNAVAILABLE", ErrorCategory.CACHE, context,
        )
