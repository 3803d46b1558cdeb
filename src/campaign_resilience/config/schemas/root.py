"""Root configuration schema."""

from typing import Optional

from pydantic import field_validator
from pydantic.dataclasses import dataclass

from campaign_resilience.config.schemas.delivery import DispatchConfig, IngestionConfig, PostgresConfig
from campaign_resilience.config.schemas.logging import LoggingConfig
from campaign_resilience.config.schemas.resilience import ResilienceConfig


@dataclass
class ServiceConfig:
    """Complete campaign-resilience configuration."""

    project: str = "campaign-resilience"
    environment: str = "development"

    resilience: Optional[ResilienceConfig] = None
    dispatch: Optional[DispatchConfig] = None
    ingestion: Optional[IngestionConfig] = None
    storage: Optional[PostgresConfig] = None
    logging: Optional[LoggingConfig] = None

    def __post_init__(self):
        """Initialize nested configs with defaults if not provided."""
        if self.resilience is None:
            self.resilience = ResilienceConfig()
        if self.dispatch is None:
            self.dispatch = DispatchConfig()
        if self.ingestion is None:
            self.ingestion = IngestionConfig()
        if self.storage is None:
            self.storage = PostgresConfig()
        if self.logging is None:
            self.logging = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed_environments = {"development", "testing", "production"}
        if v not in allowed_environments:
            raise ValueError(f"Environment must be one of {allowed_environments}, got: {v}")
        return v
