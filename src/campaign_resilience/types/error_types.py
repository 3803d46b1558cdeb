"""Error taxonomy for dependency calls and event delivery."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Categories of errors for better handling."""
    TRANSIENT = "transient"  # Dependency failed, may succeed later
    CIRCUIT_OPEN = "circuit_open"  # Call rejected before reaching the dependency
    PERMANENT = "permanent"  # Never retried
    CANCELLED = "cancelled"  # Cooperative cancellation
    EXHAUSTED = "exhausted"  # Retry budget spent
    FATAL = "fatal"  # Nothing left to degrade to
    UNKNOWN = "unknown"


class ResilienceError(Exception):
    """Base error carrying category, severity and structured context."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if severity is not None:
            self.severity = severity
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a JSON-serializable dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class TransientDependencyError(ResilienceError):
    """A call to an external dependency failed and may succeed later."""

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        message: str,
        dependency: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        **kwargs: Any,
    ):
        self.dependency = dependency
        self.original_error = original_error
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["dependency"] = self.dependency
        data["original_error"] = str(self.original_error) if self.original_error else None
        return data


class IngestionError(TransientDependencyError):
    """The ingestion API rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[int] = None,
        error_subcode: Optional[int] = None,
        trace_id: Optional[str] = None,
        **kwargs: Any,
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.error_subcode = error_subcode
        self.trace_id = trace_id
        kwargs.setdefault("dependency", "ingestion-api")
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            status_code=self.status_code,
            error_code=self.error_code,
            error_subcode=self.error_subcode,
            trace_id=self.trace_id,
        )
        return data


class PermanentRejectionError(ResilienceError):
    """Events that will never be accepted and must not be retried."""

    category = ErrorCategory.PERMANENT
    severity = ErrorSeverity.LOW

    def __init__(self, event_ids: Sequence[str], reason: str, **kwargs: Any):
        self.event_ids: List[str] = list(event_ids)
        self.reason = reason
        super().__init__(
            f"{len(self.event_ids)} event(s) permanently rejected: {reason}", **kwargs
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["event_ids"] = self.event_ids
        data["reason"] = self.reason
        return data


class RetryCancelledError(ResilienceError):
    """Raised when a cancellation token fires before an attempt or during backoff."""

    category = ErrorCategory.CANCELLED
    severity = ErrorSeverity.LOW

    def __init__(self, message: str = "Retry cancelled", attempt: Optional[int] = None, **kwargs: Any):
        self.attempt = attempt
        super().__init__(message, **kwargs)


class ExhaustedRetriesError(ResilienceError):
    """Error when all retry attempts have been exhausted."""

    category = ErrorCategory.EXHAUSTED
    severity = ErrorSeverity.HIGH

    def __init__(self, attempts: int, last_error: BaseException, **kwargs: Any):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Operation failed after {attempts} attempts: {last_error}", **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        data["last_error"] = str(self.last_error)
        return data


class FatalFallbackError(ResilienceError):
    """Every fallback tier failed, including the deterministic template."""

    category = ErrorCategory.FATAL
    severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, last_error: Optional[BaseException] = None, **kwargs: Any):
        self.last_error = last_error
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["last_error"] = str(self.last_error) if self.last_error else None
        return data


def serialize_error(error: BaseException) -> str:
    """
    Safely serialize any exception to JSON string.

    Examples:
        >>> serialize_error(ValueError("Invalid value"))
        '{"error_type": "ValueError", "message": "Invalid value"}'
    """
    return json.dumps(error_to_dict(error))


def error_to_dict(error: BaseException) -> Dict[str, Any]:
    """Convert any exception to a JSON-serializable dictionary."""
    if isinstance(error, ResilienceError):
        return error.to_dict()
    return {
        "error_type": error.__class__.__name__,
        "message": str(error),
    }
