"""SQLAlchemy models for conversion event persistence."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models with async support."""
    pass


class ConversionEventRecord(Base):
    """
    One tracked conversion and its delivery state.

    ``delivery_state`` is ``unsent`` until the dispatcher moves it to one of
    the terminal states ``sent``, ``expired`` or ``failed``.
    """
    __tablename__ = "conversion_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    partition_key: Mapped[str] = mapped_column(String(128), nullable=False)
    dedup_key: Mapped[str] = mapped_column(String(256), nullable=False)
    event_name: Mapped[str] = mapped_column(String(128), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    delivery_state: Mapped[str] = mapped_column(String(16), nullable=False, default="unsent")
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_data: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    custom_data: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("idx_conversion_events_state_created", "delivery_state", "created_at"),
        Index("idx_conversion_events_partition", "partition_key"),
        Index("idx_conversion_events_dedup", "dedup_key", unique=True),
    )


class TrackingDestination(Base):
    """Destination id and access secret for one partition key."""
    __tablename__ = "tracking_destinations"

    partition_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    destination_id: Mapped[str] = mapped_column(String(128), nullable=False)
    access_secret: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
