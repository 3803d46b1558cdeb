"""Centralized loguru configuration.

Provides:
- Console and optional file sinks with rotation
- Standard logging interception for SQLAlchemy and httpx
- Context binding for run_id (dispatcher runs) and dependency (guarded call sites)

Example:
    >>> from campaign_resilience.logging_config import configure_logging, run_context
    >>> configure_logging(level="DEBUG")
    >>> with run_context("run_123"):
    ...     logger.info("Dispatching")  # record carries run_id=run_123
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional, Union

from loguru import logger

if TYPE_CHECKING:
    from campaign_resilience.config.schemas.logging import LoggingConfig

# Context variables for structured logging (async-safe)
run_id_context: ContextVar[Optional[str]] = ContextVar("run_id", default=None)
dependency_context: ContextVar[Optional[str]] = ContextVar("dependency", default=None)

CONSOLE_FORMATS = {
    "minimal": "<level>{level: <8}</level> | <level>{message}</level>",
    "default": (
        "<green>{time:HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
        "<level>{message}</level>"
    ),
    "detailed": (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "{extra[run_id]:<12} | "
        "{extra[dependency]:<16} | "
        "<level>{message}</level>"
    ),
}

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{name}:{function}:{line} | "
    "{extra[run_id]} | "
    "{extra[dependency]} | "
    "{message} | "
    "{exception}"
)


class InterceptHandler(logging.Handler):
    """Route standard logging records (SQLAlchemy, httpx) through loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _context_filter(record) -> bool:
    record["extra"].setdefault("run_id", run_id_context.get() or "none")
    record["extra"].setdefault("dependency", dependency_context.get() or "none")
    return True


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
    console_format: str = "default",
    file_format: str = "default",
    rotation: str = "100 MB",
    retention: str = "30 days",
    compression: str = "zip",
    intercepted_loggers: Iterable[str] = ("sqlalchemy.engine", "httpx", "httpcore"),
    colorize: bool = True,
    backtrace: bool = True,
    diagnose: bool = False,
    enqueue: bool = False,
) -> None:
    """Configure loguru sinks.

    Args:
        level: Minimum log level
        log_dir: Directory for log files (None = console only)
        console_format: "default", "detailed" or "minimal"
        file_format: "default" text or "json" (serialized records)
        rotation: When to rotate log files
        retention: How long to keep old logs
        compression: Compression format for rotated logs
        intercepted_loggers: Standard-library loggers to reroute into loguru
        colorize: Enable colored console output
        backtrace: Show full traceback on errors
        diagnose: Show variable values in traceback
        enqueue: Log through a queue (multiprocess safe)
    """
    valid_levels = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
    level = level.upper()
    if level not in valid_levels:
        raise ValueError(f"Invalid log level: {level}. Must be one of {valid_levels}")

    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format=CONSOLE_FORMATS.get(console_format, CONSOLE_FORMATS["default"]),
        colorize=colorize,
        filter=_context_filter,
        backtrace=backtrace,
        diagnose=diagnose,
        enqueue=enqueue,
    )

    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / "campaign_resilience_{time:YYYY-MM-DD}.log"

        file_kwargs = dict(
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            filter=_context_filter,
            backtrace=backtrace,
            diagnose=diagnose,
            enqueue=enqueue,
        )
        if file_format == "json":
            logger.add(log_file, serialize=True, **file_kwargs)
        else:
            logger.add(log_file, format=FILE_FORMAT, **file_kwargs)

    handler = InterceptHandler()
    for name in intercepted_loggers:
        lib_logger = logging.getLogger(name)
        lib_logger.handlers = [handler]
        lib_logger.propagate = False


def configure_from_config(config: "LoggingConfig") -> None:
    """Initialize logging from a LoggingConfig object."""
    configure_logging(
        level=config.level,
        log_dir=config.get_log_path(),
        console_format=config.console_format,
        file_format=config.file_format,
        rotation=config.rotation,
        retention=config.retention,
        compression=config.compression,
        intercepted_loggers=config.intercepted_loggers,
        colorize=config.colorize,
        backtrace=config.backtrace,
        diagnose=config.diagnose,
        enqueue=config.enqueue,
    )


def get_logger():
    """Get a loguru logger bound to the current run and dependency context."""
    return logger.bind(
        run_id=run_id_context.get() or "none",
        dependency=dependency_context.get() or "none",
    )


@contextmanager
def run_context(run_id: str):
    """Set run_id for all logs emitted inside the block."""
    token = run_id_context.set(run_id)
    try:
        yield
    finally:
        run_id_context.reset(token)


@contextmanager
def dependency_scope(name: str):
    """Set the dependency name for all logs emitted inside the block."""
    token = dependency_context.set(name)
    try:
        yield
    finally:
        dependency_context.reset(token)


__all__ = [
    "configure_logging",
    "configure_from_config",
    "get_logger",
    "run_context",
    "dependency_scope",
    "run_id_context",
    "dependency_context",
    "InterceptHandler",
]
