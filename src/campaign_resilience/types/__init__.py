"""Type definitions and enumerations for campaign-resilience."""

from .error_types import (
    ErrorSeverity,
    ErrorCategory,
    ResilienceError,
    TransientDependencyError,
    IngestionError,
    PermanentRejectionError,
    RetryCancelledError,
    ExhaustedRetriesError,
    FatalFallbackError,
    serialize_error,
    error_to_dict,
)
from .resilience_types import (
    CircuitState,
    FallbackTier,
    MONITORED_TIERS,
    CircuitOpenError,
)
from .resilience_models import (
    CancellationToken,
    RetryPolicy,
    CircuitBreakerConfig,
    FallbackConfig,
    TierHealth,
    FallbackResult,
)
from .delivery_models import (
    DeliveryState,
    ConversionEvent,
    PartitionCredential,
    IngestionReceipt,
    DispatchSummary,
)

__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ResilienceError",
    "TransientDependencyError",
    "IngestionError",
    "PermanentRejectionError",
    "RetryCancelledError",
    "ExhaustedRetriesError",
    "FatalFallbackError",
    "serialize_error",
    "error_to_dict",
    "CircuitState",
    "FallbackTier",
    "MONITORED_TIERS",
    "CircuitOpenError",
    "CancellationToken",
    "RetryPolicy",
    "CircuitBreakerConfig",
    "FallbackConfig",
    "TierHealth",
    "FallbackResult",
    "DeliveryState",
    "ConversionEvent",
    "PartitionCredential",
    "IngestionReceipt",
    "DispatchSummary",
]
