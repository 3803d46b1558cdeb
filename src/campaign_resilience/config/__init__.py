"""Configuration system using OmegaConf and Pydantic."""

from pathlib import Path
from typing import List, Optional

from .manager import DEFAULT_ENV_PREFIX, ConfigManager
from .schemas import (
    CircuitBreakerSettings,
    DispatchConfig,
    FallbackSettings,
    IngestionConfig,
    LoggingConfig,
    PostgresConfig,
    ResilienceConfig,
    RetrySettings,
    ServiceConfig,
)


def load_config(
    config_path: Optional[str] = None,
    profile: Optional[str] = None,
    overrides: Optional[List[str]] = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    config_dir: Optional[Path] = None,
) -> ServiceConfig:
    """
    Convenience function to load configuration.

    Examples:
        # Use all defaults
        config = load_config()

        # With profile and overrides
        config = load_config(profile="production", overrides=["dispatch.batch_limit=500"])

        # Environment variables (CAMPAIGN__INGESTION__TIMEOUT=10)
        config = load_config()
    """
    manager = ConfigManager(config_dir)
    return manager.load_config(
        Path(config_path) if config_path else None,
        profile,
        overrides,
        env_prefix,
    )


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
    "ConfigManager",
    "load_config",
]
