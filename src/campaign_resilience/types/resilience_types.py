"""
Type definitions for resilience patterns.
"""

from enum import Enum
from typing import Optional

from campaign_resilience.types.error_types import ErrorCategory, ResilienceError


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, rejecting calls
    HALF_OPEN = "half_open"  # Testing recovery


class FallbackTier(str, Enum):
    """Quality tiers of the fallback executor, highest first."""

    ADVANCED = "advanced"
    BASIC = "basic"
    TEMPLATE = "template"


# Tiers that make external calls and therefore carry health state
MONITORED_TIERS = (FallbackTier.ADVANCED, FallbackTier.BASIC)


class CircuitOpenError(ResilienceError):
    """Raised when circuit breaker is open."""

    category = ErrorCategory.CIRCUIT_OPEN

    def __init__(
        self,
        message: str = "Circuit breaker is open",
        dependency: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.dependency = dependency
        self.retry_after = retry_after
        super().__init__(message, context={"dependency": dependency, "retry_after": retry_after})
