"""Pytest configuration and shared fakes for campaign-resilience tests."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

import pytest
from loguru import logger

from campaign_resilience.types import (
    ConversionEvent,
    DeliveryState,
    IngestionReceipt,
    PartitionCredential,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Zero-delay replacement for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class InMemoryEventRepository:
    """ConversionEventRepository backed by a dict; terminal states are never overwritten."""

    def __init__(
        self,
        events: Iterable[ConversionEvent] = (),
        credentials: Iterable[PartitionCredential] = (),
    ):
        self.events: Dict[str, ConversionEvent] = {event.id: event for event in events}
        self.credentials: Dict[str, PartitionCredential] = {
            credential.partition_key: credential for credential in credentials
        }
        self.credential_lookups: List[List[str]] = []

    async def find_unsent_events(self, limit: int) -> List[ConversionEvent]:
        unsent = [e for e in self.events.values() if e.delivery_state is DeliveryState.UNSENT]
        unsent.sort(key=lambda e: e.created_at)
        return [e.model_copy() for e in unsent[:limit]]

    async def find_partition_credentials(self, partition_keys: Iterable[str]) -> List[PartitionCredential]:
        keys = list(partition_keys)
        self.credential_lookups.append(keys)
        return [self.credentials[key] for key in keys if key in self.credentials]

    async def mark_sent_batch(self, ids: Sequence[str], status: DeliveryState) -> None:
        self._transition(ids, status)

    async def mark_expired_batch(self, ids: Sequence[str]) -> None:
        self._transition(ids, DeliveryState.EXPIRED)

    async def increment_retry_batch(self, ids: Sequence[str]) -> None:
        for event_id in ids:
            event = self.events[event_id]
            if event.delivery_state is DeliveryState.UNSENT:
                event.retry_count += 1

    def _transition(self, ids: Sequence[str], status: DeliveryState) -> None:
        for event_id in ids:
            event = self.events[event_id]
            if event.delivery_state is DeliveryState.UNSENT:
                event.delivery_state = status

    def state_of(self, event_id: str) -> DeliveryState:
        return self.events[event_id].delivery_state


class FakeIngestionClient:
    """IngestionClient that acknowledges everything except configured partitions."""

    def __init__(self, failing_partitions: Iterable[str] = ()):
        self.failing_partitions = set(failing_partitions)
        self.calls: List[tuple] = []

    async def send_events(
        self, events: Sequence[ConversionEvent], credential: PartitionCredential
    ) -> IngestionReceipt:
        self.calls.append((credential.partition_key, [e.id for e in events]))
        if credential.partition_key in self.failing_partitions:
            raise ConnectionError(f"destination {credential.destination_id} unreachable")
        return IngestionReceipt(events_received=len(events), trace_id=f"trace-{credential.partition_key}")


def make_event(
    event_id: str,
    partition_key: str = "p1",
    age: timedelta = timedelta(hours=1),
    retry_count: int = 0,
    now: datetime = NOW,
    **kwargs,
) -> ConversionEvent:
    return ConversionEvent(
        id=event_id,
        partition_key=partition_key,
        dedup_key=f"dedup-{event_id}",
        event_name=kwargs.pop("event_name", "Purchase"),
        occurred_at=now - age,
        retry_count=retry_count,
        created_at=kwargs.pop("created_at", now - age),
        **kwargs,
    )


def make_credential(partition_key: str, destination_id: Optional[str] = None) -> PartitionCredential:
    return PartitionCredential(
        partition_key=partition_key,
        destination_id=destination_id or f"dest-{partition_key}",
        secret=f"secret-{partition_key}",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clean_loguru():
    """Remove loguru handlers for the test and restore a stderr sink afterwards."""
    logger.remove()
    yield
    logger.remove()
    logger.add(sys.stderr, level="INFO")
