"""Build resilience objects from configuration.

Every object is constructed explicitly and handed to whoever composes the
service graph; nothing here is cached at module level.
"""

import time
from typing import Callable, Optional

from campaign_resilience.config.schemas.resilience import (
    CircuitBreakerSettings,
    FallbackSettings,
    ResilienceConfig,
    RetrySettings,
)
from campaign_resilience.resilience.circuit_breaker import CircuitBreakerRegistry
from campaign_resilience.resilience.fallback import TieredFallbackExecutor
from campaign_resilience.types.resilience_models import CancellationToken, RetryPolicy


def create_retry_policy(
    settings: Optional[RetrySettings] = None,
    cancellation_token: Optional[CancellationToken] = None,
) -> RetryPolicy:
    """Create a per-call retry policy from settings."""
    policy = (settings or RetrySettings()).to_policy()
    if cancellation_token is not None:
        policy = policy.model_copy(update={"cancellation_token": cancellation_token})
    return policy


def create_circuit_breaker_registry(
    settings: Optional[CircuitBreakerSettings] = None,
    clock: Callable[[], float] = time.monotonic,
) -> CircuitBreakerRegistry:
    """Create a registry pre-populated with one breaker per configured dependency."""
    settings = settings or CircuitBreakerSettings()
    return CircuitBreakerRegistry(
        default_config=settings.to_breaker_config(),
        dependencies=settings.dependencies,
        clock=clock,
    )


def create_fallback_executor(
    settings: Optional[FallbackSettings] = None,
    clock: Callable[[], float] = time.monotonic,
) -> TieredFallbackExecutor:
    """Create a tiered fallback executor from settings."""
    return TieredFallbackExecutor((settings or FallbackSettings()).to_fallback_config(), clock=clock)


class ResilienceServices:
    """The resilience objects one process instance shares across call sites."""

    def __init__(self, config: Optional[ResilienceConfig] = None):
        config = config or ResilienceConfig()
        self.config = config
        self.breakers = create_circuit_breaker_registry(config.circuit_breaker)
        self.fallback = create_fallback_executor(config.fallback)

    def retry_policy(self, cancellation_token: Optional[CancellationToken] = None) -> RetryPolicy:
        return create_retry_policy(self.config.retry, cancellation_token)
