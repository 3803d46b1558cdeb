"""Logging configuration schema."""

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic.dataclasses import dataclass

VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class LoggingConfig:
    """Configuration for loguru-based logging."""

    level: str = "INFO"
    log_dir: Optional[str] = None  # None = console only

    console_format: Literal["default", "minimal", "detailed"] = "default"
    file_format: Literal["default", "json"] = "default"
    colorize: bool = True

    # File sink rotation
    rotation: str = "100 MB"
    retention: str = "30 days"
    compression: str = "zip"

    # Standard-library loggers rerouted into loguru
    intercepted_loggers: List[str] = Field(
        default_factory=lambda: ["sqlalchemy.engine", "httpx", "httpcore"]
    )

    backtrace: bool = True
    diagnose: bool = False  # Leaks variable values; keep off in production
    enqueue: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is valid."""
        v_upper = v.upper()
        if v_upper not in VALID_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LEVELS}")
        return v_upper

    def get_log_path(self) -> Optional[Path]:
        """Get resolved log directory path."""
        if self.log_dir:
            return Path(self.log_dir).expanduser().resolve()
        return None
