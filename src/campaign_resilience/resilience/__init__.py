"""
Resilience primitives for calls to slow, erroring or rate-limited dependencies.

- Bounded retry with exponential backoff, jitter and cancellation
- Per-dependency circuit breakers
- Tiered fallback with self-healing tier health
"""

from .retry_executor import RetryExecutor
from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from .fallback import TieredFallbackExecutor
from .factory import (
    ResilienceServices,
    create_retry_policy,
    create_circuit_breaker_registry,
    create_fallback_executor,
)
from .decorators import (
    with_retry,
    with_circuit_breaker,
    with_dependency_resilience,
)

__all__ = [
    "RetryExecutor",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "TieredFallbackExecutor",
    "ResilienceServices",
    "create_retry_policy",
    "create_circuit_breaker_registry",
    "create_fallback_executor",
    "with_retry",
    "with_circuit_breaker",
    "with_dependency_resilience",
]
