"""Error Hierarchy — typed, categorized exceptions for all MatchSync failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - retryable is True only for TransientRemoteError, ActionTimeoutError and ConflictError
    - PermanentError subclasses are dead-lettered immediately, never retried
    - LocalPersistenceError is the only error an enqueue call may surface synchronously
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with MatchSyncError base: FastAPI global handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - Retry policy encoded on the class (retryable), not in executor branches
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    REMOTE = "remote"
    LOCAL_STORAGE = "local_storage"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    action_id: str | None = None
    action_kind: str | None = None
    user_id: str | None = None
    match_id: str | None = None
    attempt: int | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class MatchSyncError(Exception):
    """Base exception for all MatchSync errors."""

    retryable: bool = False

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
                    "action_id": self.context.action_id,
                    "action_kind": self.context.action_kind,
                    "match_id": self.context.match_id,
                    "user_id": self.context.user_id,
                },
            }
        }

    def to_sse_event(self) -> dict:
        """Convert to SSE error event."""
        return {
            "type": "error",
            "data": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "severity": self.severity.value,
                "recoverable": self.retryable,
                "action_id": self.context.action_id,
            },
        }


# ─── Retryable (remote) ─────────────────────────────────────────

class TransientRemoteError(MatchSyncError):
    """Network or availability failure talking to the remote store."""
    retryable = True

    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Remote {operation} failed: {message}",
            "REMOTE_UNAVAILABLE", ErrorCategory.REMOTE,
            ErrorSeverity.WARNING, context, 503,
        )
        self.operation = operation


class ActionTimeoutError(MatchSyncError):
    """A single action exceeded its per-attempt timeout."""
    retryable = True

    def __init__(self, timeout_seconds: float, context: ErrorContext | None = None):
        super().__init__(
            f"Action timed out after {timeout_seconds}s",
            "ACTION_TIMEOUT", ErrorCategory.TIMEOUT,
            ErrorSeverity.WARNING, context, 504,
        )
        self.timeout_seconds = timeout_seconds


class ConflictError(MatchSyncError):
    """Concurrent write rejected by the remote store (optimistic version check)."""
    retryable = True

    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


# ─── Permanent (dead-letter immediately) ────────────────────────

class PermanentError(MatchSyncError):
    """Action can never succeed (malformed payload, deleted referent, policy)."""

    def __init__(
        self,
        message: str,
        code: str = "PERMANENT_FAILURE",
        category: ErrorCategory = ErrorCategory.BUSINESS_RULE,
        context: ErrorContext | None = None,
        http_status: int = 422,
    ):
        super().__init__(
            message, code, category, ErrorSeverity.ERROR, context, http_status,
        )


class ResourceNotFoundError(PermanentError):
    """Referenced document does not exist."""

    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class MatchExpiredError(PermanentError):
    """Match is no longer active (expired, unmatched or blocked)."""

    def __init__(self, match_id: str, state: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.match_id = match_id
        ctx.user_message = ctx.user_message or (
            "This match has expired. Upgrade to Premium to extend match timers."
        )
        super().__init__(
            f"Match '{match_id}' is {state}",
            "MATCH_NOT_ACTIVE", ErrorCategory.BUSINESS_RULE,
            ctx, 409,
        )
        self.state = state


class ValidationError(PermanentError):
    """Payload failed local validation."""

    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            context, 400,
        )
        self.field = field


# ─── Local storage ──────────────────────────────────────────────

class LocalPersistenceError(MatchSyncError):
    """On-device storage failed or holds corrupt state."""

    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Local {operation} failed: {message}",
            "LOCAL_PERSISTENCE_ERROR", ErrorCategory.LOCAL_STORAGE,
            ErrorSeverity.CRITICAL, context, 507,
        )
        self.operation = operation
