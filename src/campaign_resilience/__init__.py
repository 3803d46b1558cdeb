"""campaign-resilience: resilient calls to flaky dependencies and batched conversion delivery."""

__version__ = "0.1.0"

from .types import (
    CancellationToken,
    CircuitOpenError,
    CircuitState,
    ConversionEvent,
    DeliveryState,
    DispatchSummary,
    ExhaustedRetriesError,
    FallbackResult,
    FallbackTier,
    FatalFallbackError,
    RetryCancelledError,
    RetryPolicy,
)
from .resilience import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    ResilienceServices,
    RetryExecutor,
    TieredFallbackExecutor,
)
from .delivery import ConversionEventDispatcher
from .config import load_config

__all__ = [
    "__version__",
    "CancellationToken",
    "CircuitOpenError",
    "CircuitState",
    "ConversionEvent",
    "DeliveryState",
    "DispatchSummary",
    "ExhaustedRetriesError",
    "FallbackResult",
    "FallbackTier",
    "FatalFallbackError",
    "RetryCancelledError",
    "RetryPolicy",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "ResilienceServices",
    "RetryExecutor",
    "TieredFallbackExecutor",
    "ConversionEventDispatcher",
    "load_config",
]
