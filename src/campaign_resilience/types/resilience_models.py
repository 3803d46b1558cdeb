"""
Pydantic models for resilience patterns.
"""

import asyncio
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from campaign_resilience.types.resilience_types import FallbackTier


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and a RetryExecutor."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        """Suspend until cancel() is called."""
        await self._event.wait()


class RetryPolicy(BaseModel):
    """Per-call retry configuration for RetryExecutor."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0.0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    jitter: float = Field(default=0.1, ge=0.0)
    max_delay: Optional[float] = Field(default=None, gt=0.0)
    attempt_timeout: Optional[float] = Field(default=None, gt=0.0)
    cancellation_token: Optional[CancellationToken] = None


class CircuitBreakerConfig(BaseModel):
    """Configuration for circuit breaker behavior."""

    failure_threshold: int = Field(default=5, ge=1)
    recovery_timeout: float = Field(default=60.0, gt=0.0)


class FallbackConfig(BaseModel):
    """Configuration for the tiered fallback executor."""

    max_retries: int = Field(default=2, ge=0)
    timeout: float = Field(default=30.0, gt=0.0)
    backoff_base: float = Field(default=1.0, ge=0.0)
    enabled_tiers: list[FallbackTier] = Field(
        default_factory=lambda: [FallbackTier.ADVANCED, FallbackTier.BASIC, FallbackTier.TEMPLATE]
    )
    failure_threshold: int = Field(default=5, ge=1)
    cooldown: float = Field(default=60.0, gt=0.0)


class TierHealth(BaseModel):
    """Health record of one externally backed fallback tier."""

    healthy: bool = True
    consecutive_failures: int = 0
    last_checked_at: Optional[float] = None
    unhealthy_until: Optional[float] = None  # None while unhealthy means force-disabled

    def is_available(self, now: float) -> bool:
        """Return True if the tier may be attempted, healing it once its cooldown has passed."""
        if self.healthy:
            return True
        if self.unhealthy_until is not None and now >= self.unhealthy_until:
            self.healthy = True
            self.consecutive_failures = 0
            self.unhealthy_until = None
            return True
        return False

    def record_success(self, now: float) -> None:
        self.healthy = True
        self.consecutive_failures = 0
        self.unhealthy_until = None
        self.last_checked_at = now

    def record_failure(self, now: float, threshold: int, cooldown: float) -> bool:
        """Count a failure; return True if this failure marked the tier unhealthy."""
        self.consecutive_failures += 1
        self.last_checked_at = now
        if self.healthy and self.consecutive_failures >= threshold:
            self.healthy = False
            self.unhealthy_until = now + cooldown
            return True
        return False


class FallbackResult(BaseModel):
    """Outcome of execute_with_fallback."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: Any
    tier: FallbackTier
    was_downgraded: bool
    original_error: Optional[str] = None
