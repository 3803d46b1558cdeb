"""Configuration schemas for campaign-resilience."""

from .delivery import DispatchConfig, IngestionConfig, PostgresConfig
from .logging import LoggingConfig
from .resilience import (
    CircuitBreakerSettings,
    FallbackSettings,
    ResilienceConfig,
    RetrySettings,
)
from .root import ServiceConfig

__all__ = [
    "CircuitBreakerSettings",
    "DispatchConfig",
    "FallbackSettings",
    "IngestionConfig",
    "LoggingConfig",
    "PostgresConfig",
    "ResilienceConfig",
    "RetrySettings",
    "ServiceConfig",
]
