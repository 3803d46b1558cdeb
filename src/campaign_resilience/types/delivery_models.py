"""Pydantic models for conversion event delivery."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class DeliveryState(str, Enum):
    """Delivery lifecycle of a conversion event. Only UNSENT is non-terminal."""

    UNSENT = "unsent"
    SENT = "sent"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DeliveryState.UNSENT


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ConversionEvent(BaseModel):
    """One tracked conversion awaiting (or done with) delivery to its destination."""

    id: str
    partition_key: str = Field(min_length=1)
    dedup_key: str = Field(min_length=1)
    event_name: str = Field(min_length=1)
    occurred_at: datetime
    delivery_state: DeliveryState = DeliveryState.UNSENT
    retry_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_url: Optional[str] = None
    user_data: Dict[str, Any] = Field(default_factory=dict)
    custom_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("occurred_at", "created_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Normalize timestamps to aware UTC."""
        return _as_utc(v)

    def is_stale(self, now: datetime, window: timedelta) -> bool:
        """True once the event is older than the destination's acceptance window."""
        return _as_utc(now) - self.occurred_at > window


class PartitionCredential(BaseModel):
    """Destination id and secret for one partition key."""

    partition_key: str
    destination_id: str
    secret: str = Field(repr=False)


class IngestionReceipt(BaseModel):
    """Acknowledgement returned by the ingestion API for one bulk send."""

    events_received: int = 0
    trace_id: Optional[str] = None
    messages: List[str] = Field(default_factory=list)


class DispatchSummary(BaseModel):
    """Outcome counts of one dispatcher run."""

    processed: int = 0
    sent: int = 0
    expired: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
