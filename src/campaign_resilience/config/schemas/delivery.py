"""Dispatcher, ingestion client and storage configuration schemas."""

from pydantic import Field, field_validator
from pydantic.dataclasses import dataclass


@dataclass
class DispatchConfig:
    """Conversion event dispatcher policy."""

    batch_limit: int = Field(default=1000, ge=1, le=10000)
    stale_after_days: int = Field(default=7, ge=1)
    max_retry_count: int = Field(default=3, ge=0)
    max_concurrent_partitions: int = Field(default=4, ge=1, le=64)


@dataclass
class IngestionConfig:
    """External ingestion API settings."""

    base_url: str = "https://graph.facebook.com"
    api_version: str = "v18.0"
    timeout: float = Field(default=30.0, gt=0.0)
    max_batch_size: int = Field(default=1000, ge=1)
    action_source: str = "website"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {v}")
        return v.rstrip("/")


@dataclass
class PostgresConfig:
    """Database settings for the conversion event repository."""

    connection_url: str = Field(
        default="postgresql+asyncpg://localhost/campaigns",
        description="Async SQLAlchemy URL (asyncpg in production, aiosqlite in tests)"
    )

    pool_size: int = Field(
        default=5,
        description="Connection pool size",
        ge=1,
        le=50
    )

    max_overflow: int = Field(
        default=10,
        description="Maximum overflow connections beyond pool_size",
        ge=0,
        le=100
    )

    pool_timeout: float = Field(
        default=30.0,
        description="Connection pool timeout in seconds",
        ge=1.0
    )

    echo_sql: bool = Field(
        default=False,
        description="Echo SQL statements to logs (debug mode)"
    )

    @field_validator("connection_url")
    @classmethod
    def validate_connection_url(cls, v: str) -> str:
        """Validate connection URL uses an async driver."""
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "connection_url must use an async driver (postgresql+asyncpg:// or sqlite+aiosqlite://)"
            )
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.connection_url.startswith("sqlite")
