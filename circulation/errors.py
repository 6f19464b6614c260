"""Error taxonomy for the circulation core.

Every error carries a stable code, a category and the HTTP status the API
layer maps it to. ``message`` is always safe to show to an end user.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE = "storage"


class CirculationError(Exception):
    """Base exception for all circulation core errors."""

    def __init__(self, message: str, code: str, category: ErrorCategory, http_status: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.http_status = http_status
        self.timestamp = datetime.now(timezone.utc)

    def to_response(self) -> dict:
        """Convert to the standard REST error envelope."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "timestamp": self.timestamp.isoformat(),
            }
        }


class ValidationError(CirculationError):
    """Bad input: a required field is empty or a value is too long."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "VALIDATION_ERROR", ErrorCategory.VALIDATION, 400)
        self.field = field

    def to_response(self) -> dict:
        body = super().to_response()
        body["error"]["field"] = self.field
        return body


class NotFoundError(CirculationError):
    """Requested entity does not exist."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "NOT_FOUND", ErrorCategory.NOT_FOUND, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(CirculationError):
    """A mutation would break a circulation invariant.

    ``reason`` is a short stable phrase ("already returned") suitable for
    matching; ``message`` is the sentence shown to the user.
    """

    def __init__(self, reason: str, message: Optional[str] = None, code: str = "CONFLICT", http_status: int = 409):
        super().__init__(message or reason, code, ErrorCategory.CONFLICT, http_status)
        self.reason = reason

    def to_response(self) -> dict:
        body = super().to_response()
        body["error"]["reason"] = self.reason
        return body


class IneligibleError(ConflictError):
    """A loan was refused by the eligibility rules."""

    def __init__(self, reason: str, message: str):
        super().__init__(reason, message, code="NOT_ELIGIBLE", http_status=422)

    def to_response(self) -> dict:
        body = super().to_response()
        body.update({"eligible": False, "reason": self.reason, "message": self.message})
        return body


class StorageError(CirculationError):
    """The underlying store failed. Transient; reads may be retried."""

    def __init__(self, message: str, operation: str, code: str = "STORAGE_ERROR"):
        super().__init__(
            f"Storage {operation} failed: {message}",
            code, ErrorCategory.STORAGE, 503,
        )
        self.operation = operation


class LockTimeoutError(StorageError):
    """A keyed lock could not be acquired before the deadline."""

    def __init__(self, key: str, timeout: float):
        super().__init__(
            f"timed out after {timeout:.1f}s waiting for {key}",
            "lock", code="LOCK_TIMEOUT",
        )
        self.key = key
