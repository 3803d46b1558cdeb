"""Resilience configuration schemas."""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic.dataclasses import dataclass

from campaign_resilience.types.resilience_models import (
    CircuitBreakerConfig,
    FallbackConfig,
    RetryPolicy,
)
from campaign_resilience.types.resilience_types import FallbackTier


@dataclass
class RetrySettings:
    """Default retry policy for RetryExecutor call sites."""

    max_retries: int = 3
    base_delay: float = 1.0
    backoff_factor: float = 2.0
    jitter: float = 0.1
    max_delay: float = 60.0
    attempt_timeout: Optional[float] = None

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate max_retries is within valid range."""
        if not (0 <= v <= 10):
            raise ValueError(f"Max retries must be between 0 and 10, got {v}")
        return v

    @field_validator("base_delay", "jitter")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Delays must be non-negative, got {v}")
        return v

    @field_validator("backoff_factor")
    @classmethod
    def validate_backoff_factor(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError(f"Backoff factor must be at least 1.0, got {v}")
        return v

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float) -> float:
        """Validate max_delay is within valid range."""
        if not (0.0 < v <= 3600.0):
            raise ValueError(f"Max delay must be between 0 and 3600 seconds, got {v}")
        return v

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            backoff_factor=self.backoff_factor,
            jitter=self.jitter,
            max_delay=self.max_delay,
            attempt_timeout=self.attempt_timeout,
        )


@dataclass
class CircuitBreakerSettings:
    """Circuit breaker thresholds and the dependencies to pre-create breakers for."""

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    dependencies: List[str] = Field(
        default_factory=lambda: ["ai-provider", "payment-provider", "ingestion-api"]
    )

    @field_validator("failure_threshold")
    @classmethod
    def validate_failure_threshold(cls, v: int) -> int:
        """Validate failure_threshold is within valid range."""
        if not (1 <= v <= 100):
            raise ValueError(f"Failure threshold must be between 1 and 100, got {v}")
        return v

    @field_validator("recovery_timeout")
    @classmethod
    def validate_recovery_timeout(cls, v: float) -> float:
        """Validate recovery_timeout is within valid range."""
        if not (1.0 <= v <= 3600.0):
            raise ValueError(f"Recovery timeout must be between 1.0 and 3600.0 seconds, got {v}")
        return v

    def to_breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            recovery_timeout=self.recovery_timeout,
        )


@dataclass
class FallbackSettings:
    """Tiered fallback executor settings."""

    max_retries: int = 2
    timeout: float = 30.0
    backoff_base: float = 1.0
    enabled_tiers: List[str] = Field(default_factory=lambda: ["advanced", "basic", "template"])
    failure_threshold: int = 5
    cooldown: float = 60.0

    @field_validator("enabled_tiers")
    @classmethod
    def validate_enabled_tiers(cls, v: List[str]) -> List[str]:
        allowed = {tier.value for tier in FallbackTier}
        unknown = [tier for tier in v if tier not in allowed]
        if unknown:
            raise ValueError(f"Unknown fallback tiers {unknown}; allowed: {sorted(allowed)}")
        return v

    @field_validator("timeout", "cooldown")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeouts must be positive, got {v}")
        return v

    def to_fallback_config(self) -> FallbackConfig:
        return FallbackConfig(
            max_retries=self.max_retries,
            timeout=self.timeout,
            backoff_base=self.backoff_base,
            enabled_tiers=[FallbackTier(tier) for tier in self.enabled_tiers],
            failure_threshold=self.failure_threshold,
            cooldown=self.cooldown,
        )


@dataclass
class ResilienceConfig:
    """Configuration for retry, circuit breaker and fallback features."""

    retry: Optional[RetrySettings] = None
    circuit_breaker: Optional[CircuitBreakerSettings] = None
    fallback: Optional[FallbackSettings] = None

    def __post_init__(self):
        """Initialize nested configs with defaults if not provided."""
        if self.retry is None:
            self.retry = RetrySettings()
        if self.circuit_breaker is None:
            self.circuit_breaker = CircuitBreakerSettings()
        if self.fallback is None:
            self.fallback = FallbackSettings()
